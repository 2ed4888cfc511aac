"""Contract tests for the DIC XML export.

The downstream filing system parses these documents by tag position, so the
tests pin tag order, fixed constants and the ISO-8859-1 byte packaging.
"""

from __future__ import annotations

import base64
import xml.etree.ElementTree as ET

import pytest

from export_xml import (
    XML_DECLARATION,
    XmlEncodingError,
    XmlFragmentBuilder,
    cdata,
    encode_latin1,
    export_xml_as_base64,
    nif_type,
    record_to_xml,
    sanitize_for_latin1,
    xml_data_uri,
)
from project_record import ProjectRecord

BLANK_ROOT_TAGS = (
    ["IDFORM", "c0002", "NiXCiF_c0003", "c0004", "c0007", "c0010", "EMAILSOL", "CANALSOL"]
    + ["c0013", "c0012", "NiXCiF_c0014", "c0022", "CANALREP"]
    + ["RADIOI1", "RADIOI2", "RADIOI3", "RADIODT"]
    + [f"RADIOT{i}" for i in range(1, 9)]
    + ["RADIOE1", "RADIOO1"]
    + ["ASUNTDESC", "c0030", "leyCosteEjecu", "leyPorcentaje", "leyCoste", "PLZVIG", "c0034"]
    + ["c0140", "c0141", "c0142", "c0049"]
    + ["c0059", "c0060", "c0061", "c0064", "c0065", "c0070", "c0071"]
    + ["c0081", "c0082", "c0085", "c0135", "c0134", "SUPVINC"]
    + [f"ad{i}" for i in range(1, 9)]
    + ["c0130", "c0131", "c0132", "c0143"]
)


def _decode(record: ProjectRecord) -> bytes:
    return base64.b64decode(export_xml_as_base64(record))


def _root(record: ProjectRecord) -> ET.Element:
    return ET.fromstring(_decode(record))


def _text(element: ET.Element, tag: str) -> str:
    found = element.find(tag)
    assert found is not None, tag
    return found.text or ""


def test_sanitize_escapes_ampersand_first() -> None:
    assert sanitize_for_latin1("A & B <c> \"d\" 'e'") == (
        "A &amp; B &lt;c&gt; &quot;d&quot; &apos;e&apos;"
    )
    assert "&amp;amp;" not in sanitize_for_latin1("Tom & Jerry")


def test_sanitize_normalizes_typographic_characters() -> None:
    assert sanitize_for_latin1("“Obra” ‘nueva’ – 10€ — fin…") == "\"Obra\" 'nueva' - 10EUR - fin..."


def test_sanitize_drops_characters_outside_latin1() -> None:
    assert sanitize_for_latin1("Casa 😀 José 北京") == "Casa  José "


def test_sanitize_none_is_empty() -> None:
    assert sanitize_for_latin1(None) == ""
    assert cdata("c0002", None) == "<c0002><![CDATA[]]></c0002>"


def test_nif_type_by_first_character() -> None:
    assert nif_type("B12345678") == "CIF"
    assert nif_type("12345678Z") == "NIF"
    assert nif_type("b12345678") == "NIF"
    assert nif_type("") == "NIF"
    assert nif_type(None) == "NIF"


def test_builder_keeps_call_order() -> None:
    xml = XmlFragmentBuilder()
    xml.open("A")
    xml.field("B", "1")
    xml.number("C", None)
    xml.placeholders("D", "E")
    xml.close("A")

    assert len(xml) == 6
    assert xml.to_string() == (
        "<A><B><![CDATA[1]]></B><C><![CDATA[]]></C>"
        "<D><![CDATA[]]></D><E><![CDATA[]]></E></A>"
    )


def test_blank_record_serializes_with_fixed_cardinality() -> None:
    raw = _decode(ProjectRecord())
    assert raw.startswith((XML_DECLARATION + "<XML><IDFORM><![CDATA[DIC]]></IDFORM>").encode("ascii"))
    assert raw.endswith(b"</c0143></XML>")

    root = ET.fromstring(raw)
    assert root.tag == "XML"
    assert [child.tag for child in root] == BLANK_ROOT_TAGS

    for wrapper in ("c0140", "c0049", "c0071", "c0143"):
        assert len(root.find(wrapper)) == 0
    assert _text(root, "c0141") == "0"
    assert _text(root, "c0142") == "0"
    assert _text(root, "SUPVINC") == "0"
    assert b"<c0060></c0060>" in raw


def test_fixed_constants_and_indicator_profile() -> None:
    root = _root(ProjectRecord())

    assert _text(root, "CANALSOL") == "TELEMATICA"
    assert _text(root, "CANALREP") == "TELEMATICA"
    assert _text(root, "RADIODT") == "Si"
    for tag in ["RADIOI1", "RADIOI2", "RADIOI3", "RADIOE1", "RADIOO1"] + [f"RADIOT{i}" for i in range(1, 9)]:
        assert _text(root, tag) == "No"


def test_representative_channel_preference_is_kept_when_set() -> None:
    record = ProjectRecord.model_validate(
        {"representanteNotificacion": {"canalPreferenteNotificacion": "POSTAL"}}
    )
    assert _text(_root(record), "CANALREP") == "POSTAL"


def test_tax_id_groups_carry_identifier_and_type() -> None:
    record = ProjectRecord.model_validate({
        "datosSolicitante": {"nifCif": "B12345678"},
        "representanteNotificacion": {"nif": "12345678Z"},
    })
    root = _root(record)

    applicant = root.find("NiXCiF_c0003")
    assert _text(applicant, "c0003") == "B12345678"
    assert _text(applicant, "c0003_T") == "CIF"

    representative = root.find("NiXCiF_c0014")
    assert _text(representative, "c0014") == "12345678Z"
    assert _text(representative, "c0014_T") == "NIF"


def test_numeric_fields_empty_when_absent_or_invalid() -> None:
    record = ProjectRecord.model_validate({
        "descripcion": {
            "costeEjecucionMaterial": None,
            "porcentaje": "abc",
            "canon": 12.5,
        }
    })
    root = _root(record)

    assert _text(root, "leyCosteEjecu") == ""
    assert _text(root, "leyPorcentaje") == ""
    assert _text(root, "leyCoste") == "12.5"
    assert "null" not in _decode(record).decode("latin-1")
    assert "NaN" not in _decode(record).decode("latin-1")


def test_parcel_totals_appear_identically_at_both_points() -> None:
    record = ProjectRecord.model_validate({
        "parcelasAfectadas": [
            {"superficieParcela": 100, "superficieVinculada": 40},
            {"superficieParcela": None, "superficieVinculada": 40},
            {"superficieParcela": 50, "superficieVinculada": None},
        ]
    })
    root = _root(record)

    items = root.find("c0140").findall("ITEM_c0140")
    assert len(items) == 3
    assert [_text(item, "CL05c0140") for item in items] == ["100", "", "50"]
    assert [_text(item, "CL06c0140") for item in items] == ["40", "40", ""]

    assert _text(root, "c0141") == "150"
    assert _text(root, "c0142") == "80"
    assert _text(root, "SUPVINC") == "80"


def test_parcel_item_layout() -> None:
    record = ProjectRecord.model_validate({
        "parcelasAfectadas": [{
            "referenciaCatastral": "45001A00100001",
            "provincia": "Toledo",
            "localidad": "Ajofrín",
            "poligono": "1",
            "parcela": "23",
        }]
    })
    item = _root(record).find("c0140/ITEM_c0140")

    assert [child.tag for child in item] == [
        "CL00c0140", "CL01c0140", "CL01c0140TeV", "CL02c0140", "CL02c0140TeV",
        "CL03c0140", "CL04c0140", "CL05c0140", "CL06c0140",
    ]
    assert _text(item, "CL00c0140") == "45001A00100001"
    assert _text(item, "CL01c0140") == ""
    assert _text(item, "CL01c0140TeV") == "Toledo"
    assert _text(item, "CL02c0140TeV") == "Ajofrín"


def test_construction_and_installation_column_orders_differ() -> None:
    row = {
        "uso": "Nave",
        "superficieOcupada": 1,
        "superficieConstruida": 2,
        "edificabilidad": 3,
        "numeroPlantas": 4,
        "altura": 5,
        "volumen": 6,
        "separacionAlEjeCaminos": 7,
        "separacionACaminos": 8,
        "separacionALindes": 9,
        "costeTransformacion": 10,
        "costeTotal": 11,
    }
    record = ProjectRecord.model_validate({
        "parametrosUrbanisticos": {"construcciones": [row], "instalaciones": [row]}
    })
    root = _root(record)

    construction = root.find("c0049/ITEM_c0049")
    assert [child.text or "" for child in construction] == [
        "Nave", "1", "4", "5", "2", "3", "8", "9", "7", "10", "11",
    ]

    installation = root.find("c0071/ITEM_c0071")
    assert [child.text or "" for child in installation] == [
        "Nave", "1", "2", "4", "5", "3", "8", "9", "7", "10", "11",
    ]


def test_roadways_are_folded_into_installations_group() -> None:
    record = ProjectRecord.model_validate({
        "parametrosUrbanisticos": {
            "instalaciones": [{"uso": "Depósito", "superficieOcupada": 12}],
            "viales": [{"superficieOcupada": 20, "costeTransformacion": 5}],
        }
    })
    root = _root(record)

    items = root.find("c0071").findall("ITEM_c0071")
    assert len(items) == 2
    assert _text(items[0], "CL00c0071") == "Depósito"

    vial = items[1]
    assert [child.tag for child in vial] == [f"CL{i:02d}c0071" for i in range(11)]
    assert _text(vial, "CL00c0071") == "Vial/Circulación"
    assert _text(vial, "CL01c0071") == "20"
    assert _text(vial, "CL09c0071") == "5"
    for i in list(range(2, 9)) + [10]:
        assert _text(vial, f"CL{i:02d}c0071") == ""


def test_adjoining_owner_item_layout() -> None:
    record = ProjectRecord.model_validate({
        "propietariosColindantes": [
            {"nombre": "Ana", "direccionCompleta": "C/ Mayor 1", "referenciaCatastral": "RC1"},
            {"nombre": "Luis"},
        ]
    })
    items = _root(record).find("c0143").findall("ITEM_c0143")

    assert len(items) == 2
    assert len(items[0]) == 16
    assert _text(items[0], "CL00c0143") == "Ana"
    assert _text(items[0], "CL03c0143") == "C/ Mayor 1"
    assert _text(items[0], "CL07c0143") == "RC1"
    assert _text(items[1], "CL00c0143") == "Luis"
    assert _text(items[1], "CL07c0143") == ""


def test_reserved_characters_survive_xml_parsing_escaped_once() -> None:
    record = ProjectRecord.model_validate({
        "descripcion": {"asunto": "Nave <A> & \"B\" ‘C’"}
    })
    raw = _decode(record)
    root = ET.fromstring(raw)

    assert _text(root, "ASUNTDESC") == "Nave &lt;A&gt; &amp; &quot;B&quot; 'C'"
    assert b"&amp;amp;" not in raw


def test_encoding_is_one_byte_per_character() -> None:
    record = ProjectRecord.model_validate({
        "datosSolicitante": {"nombreRazonSocial": "José Müller 😀"}
    })
    raw = _decode(record)

    assert b"<c0002><![CDATA[Jos\xe9 M\xfcller ]]></c0002>" in raw
    assert b"\xc3\xa9" not in raw
    assert raw == record_to_xml(record).encode("latin-1")


def test_encode_latin1_rejects_unsanitized_text() -> None:
    with pytest.raises(XmlEncodingError):
        encode_latin1("<XML>€</XML>")


def test_round_trip_minimal_filing() -> None:
    record = ProjectRecord.model_validate({
        "datosSolicitante": {"nombreRazonSocial": "Acme S.L.", "nifCif": "B12345678"},
        "parcelasAfectadas": [{"superficieParcela": 100, "superficieVinculada": 40}],
    })
    root = _root(record)

    assert _text(root, "c0002") == "Acme S.L."
    assert _text(root, "NiXCiF_c0003/c0003_T") == "CIF"
    assert _text(root, "c0141") == "100"
    assert _text(root, "c0142") == "40"
    assert _text(root, "SUPVINC") == "40"
    assert len(root.find("c0049")) == 0
    assert len(root.find("c0071")) == 0
    assert len(root.find("c0143")) == 0


def test_serialization_is_deterministic() -> None:
    record = ProjectRecord.model_validate({
        "datosSolicitante": {"nombreRazonSocial": "Acme S.L."},
        "parcelasAfectadas": [{"superficieParcela": 0.1}, {"superficieParcela": 0.2}],
    })
    first = export_xml_as_base64(record)

    assert export_xml_as_base64(record) == first
    assert _text(_root(record), "c0141") == "0.30000000000000004"


def test_data_uri() -> None:
    assert xml_data_uri("QUJD") == "data:application/xml;base64,QUJD"
