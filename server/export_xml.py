import base64
import logging
import re

from metrics import calculate_parcel_totals
from utils.formatting import format_number

logger = logging.getLogger("dic_server")

XML_DECLARATION = '<?xml version="1.0" encoding="ISO-8859-1"?>'
XML_ENCODING = "latin-1"
XML_FILENAME = "formulario_dic.xml"
XML_MIME_TYPE = "application/xml"

FORM_ID = "DIC"
CANAL_TELEMATICO = "TELEMATICA"
VIAL_USE_LABEL = "Vial/Circulación"

# Indicator block of the DIC form. Fixed profile: only the drafting
# technician indicator is set; the form selections do not feed these.
INDICATOR_FIELDS = (
    ("RADIOI1", "No"),
    ("RADIOI2", "No"),
    ("RADIOI3", "No"),
    ("RADIODT", "Si"),
    ("RADIOT1", "No"),
    ("RADIOT2", "No"),
    ("RADIOT3", "No"),
    ("RADIOT4", "No"),
    ("RADIOT5", "No"),
    ("RADIOT6", "No"),
    ("RADIOT7", "No"),
    ("RADIOT8", "No"),
    ("RADIOE1", "No"),
    ("RADIOO1", "No"),
)

# Numeric columns CL01..CL10 after the use label, per repeated group.
# Constructions and installations list the same parameters in different order.
CONSTRUCTION_COLUMNS = (
    "superficie_ocupada",
    "numero_plantas",
    "altura",
    "superficie_construida",
    "edificabilidad",
    "separacion_a_caminos",
    "separacion_a_lindes",
    "separacion_al_eje_caminos",
    "coste_transformacion",
    "coste_total",
)
INSTALLATION_COLUMNS = (
    "superficie_ocupada",
    "superficie_construida",
    "numero_plantas",
    "altura",
    "edificabilidad",
    "separacion_a_caminos",
    "separacion_a_lindes",
    "separacion_al_eje_caminos",
    "coste_transformacion",
    "coste_total",
)

_XML_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&apos;"),
)
_TYPOGRAPHIC_REPLACEMENTS = (
    ("“", '"'),
    ("”", '"'),
    ("‘", "'"),
    ("’", "'"),
    ("–", "-"),
    ("—", "-"),
    ("€", "EUR"),
    ("…", "..."),
)
_OUTSIDE_LATIN1 = re.compile("[^\x00-\xff]")
_UPPERCASE_START = re.compile("[A-Z]")


class XmlEncodingError(ValueError):
    """A character outside ISO-8859-1 reached the packaging step."""


def sanitize_for_latin1(value):
    if value is None:
        return ""
    s = str(value)

    # "&" goes first so the entities below are not escaped again
    for char, entity in _XML_ESCAPES:
        s = s.replace(char, entity)

    for char, plain in _TYPOGRAPHIC_REPLACEMENTS:
        s = s.replace(char, plain)

    return _OUTSIDE_LATIN1.sub("", s)


def cdata(tag, value):
    return f"<{tag}><![CDATA[{sanitize_for_latin1(value)}]]></{tag}>"


def nif_type(identifier):
    return "CIF" if _UPPERCASE_START.match(identifier or "") else "NIF"


class XmlFragmentBuilder:
    """
    Append-only sequence of XML fragments. Fragments are emitted in call
    order, which is the tag order of the downstream schema.
    """

    def __init__(self):
        self._fragments = []

    def raw(self, fragment):
        self._fragments.append(fragment)

    def open(self, tag):
        self._fragments.append(f"<{tag}>")

    def close(self, tag):
        self._fragments.append(f"</{tag}>")

    def field(self, tag, value):
        self._fragments.append(cdata(tag, value))

    def number(self, tag, value):
        self.field(tag, format_number(value))

    def placeholders(self, *tags):
        for tag in tags:
            self.field(tag, "")

    def __len__(self):
        return len(self._fragments)

    def to_string(self):
        return "".join(self._fragments)


def _write_tax_id(xml, group, tag, identifier):
    identifier = identifier or ""
    xml.open(group)
    xml.field(tag, identifier)
    xml.field(f"{tag}_T", nif_type(identifier))
    xml.close(group)


def _write_applicant(xml, solicitante):
    xml.field("c0002", solicitante.nombre_razon_social)
    _write_tax_id(xml, "NiXCiF_c0003", "c0003", solicitante.nif_cif)

    xml.open("c0004")
    xml.field("c0004Com1", "")
    xml.field("c0004Com1_T", solicitante.provincia)
    xml.field("c0004Com2", "")
    xml.field("c0004Com2_T", solicitante.municipio)
    xml.close("c0004")

    xml.field("c0007", solicitante.calle_plaza)
    xml.field("c0010", solicitante.cp)
    xml.field("EMAILSOL", solicitante.correo_electronico)
    xml.field("CANALSOL", CANAL_TELEMATICO)


def _write_representative(xml, representante):
    xml.field("c0013", representante.nombre_razon_social)
    xml.field("c0012", representante.apellidos)
    _write_tax_id(xml, "NiXCiF_c0014", "c0014", representante.nif)
    xml.field("c0022", representante.correo_electronico)
    xml.field("CANALREP", representante.canal_preferente_notificacion or CANAL_TELEMATICO)


def _write_description(xml, descripcion):
    xml.field("ASUNTDESC", descripcion.asunto)
    xml.field("c0030", descripcion.descripcion_actuacion)
    xml.number("leyCosteEjecu", descripcion.coste_ejecucion_material)
    xml.number("leyPorcentaje", descripcion.porcentaje)
    xml.number("leyCoste", descripcion.canon)
    xml.field("PLZVIG", descripcion.plazo_vigencia)
    xml.field("c0034", descripcion.solicitud_justificacion)


def _write_parcels(xml, parcels):
    xml.open("c0140")
    for p in parcels:
        xml.open("ITEM_c0140")
        xml.field("CL00c0140", p.referencia_catastral)
        xml.field("CL01c0140", "")
        xml.field("CL01c0140TeV", p.provincia)
        xml.field("CL02c0140", "")
        xml.field("CL02c0140TeV", p.localidad)
        xml.field("CL03c0140", p.poligono)
        xml.field("CL04c0140", p.parcela)
        xml.number("CL05c0140", p.superficie_parcela)
        xml.number("CL06c0140", p.superficie_vinculada)
        xml.close("ITEM_c0140")
    xml.close("c0140")


def _write_parameter_rows(xml, group, rows, columns):
    item = f"ITEM_{group}"
    for row in rows:
        xml.open(item)
        xml.field(f"CL00{group}", row.uso)
        for index, attr in enumerate(columns, start=1):
            xml.number(f"CL{index:02d}{group}", getattr(row, attr))
        xml.close(item)


def _write_roadways(xml, viales):
    # Roadways share the installations group; only CL01 and CL09 carry data
    for v in viales:
        xml.open("ITEM_c0071")
        xml.field("CL00c0071", VIAL_USE_LABEL)
        xml.number("CL01c0071", v.superficie_ocupada)
        xml.placeholders(*(f"CL{index:02d}c0071" for index in range(2, 9)))
        xml.number("CL09c0071", v.coste_transformacion)
        xml.field("CL10c0071", "")
        xml.close("ITEM_c0071")


def _write_adjoining_owners(xml, owners):
    xml.open("c0143")
    for pc in owners:
        xml.open("ITEM_c0143")
        xml.field("CL00c0143", pc.nombre)
        xml.placeholders("CL01c0143", "CL01c0143TeV", "CL02c0143", "CL02c0143TeV")
        xml.field("CL03c0143", pc.direccion_completa)
        xml.placeholders("CL04c0143", "CL05c0143", "CL06c0143")
        xml.field("CL07c0143", pc.referencia_catastral)
        xml.placeholders(
            "CL08c0143", "CL08c0143TeV", "CL09c0143", "CL09c0143TeV", "CL10c0143", "CL11c0143"
        )
        xml.close("ITEM_c0143")
    xml.close("c0143")


def record_to_xml(record):
    """
    Builds the DIC XML document for a ProjectRecord.

    Every value is written as CDATA after `sanitize_for_latin1`, so the
    returned text only holds ISO-8859-1 characters.
    """
    params = record.parametros_urbanisticos
    totals = calculate_parcel_totals(record.parcelas_afectadas)

    xml = XmlFragmentBuilder()
    xml.raw(XML_DECLARATION)
    xml.open("XML")

    xml.field("IDFORM", FORM_ID)
    _write_applicant(xml, record.datos_solicitante)
    _write_representative(xml, record.representante_notificacion)

    for tag, value in INDICATOR_FIELDS:
        xml.field(tag, value)

    _write_description(xml, record.descripcion)

    _write_parcels(xml, record.parcelas_afectadas)
    xml.number("c0141", totals["total_superficie_parcela"])
    xml.number("c0142", totals["total_superficie_vinculada"])

    xml.open("c0049")
    _write_parameter_rows(xml, "c0049", params.construcciones, CONSTRUCTION_COLUMNS)
    xml.close("c0049")

    xml.field("c0059", "")
    xml.raw("<c0060></c0060>")
    xml.placeholders("c0061", "c0064", "c0065", "c0070")

    xml.open("c0071")
    _write_parameter_rows(xml, "c0071", params.instalaciones, INSTALLATION_COLUMNS)
    _write_roadways(xml, params.viales)
    xml.close("c0071")

    xml.placeholders("c0081", "c0082", "c0085", "c0135", "c0134")
    xml.number("SUPVINC", totals["total_superficie_vinculada"])
    xml.placeholders(*(f"ad{index}" for index in range(1, 9)))

    tecnico = params.tecnico_redactor
    xml.field("c0130", tecnico.nombre)
    xml.field("c0131", tecnico.titulacion)
    xml.field("c0132", tecnico.colegiado_numero)

    _write_adjoining_owners(xml, record.propietarios_colindantes)

    xml.close("XML")
    logger.debug("Built DIC XML from %d fragments", len(xml))
    return xml.to_string()


def encode_latin1(xml_text):
    try:
        return xml_text.encode(XML_ENCODING)
    except UnicodeEncodeError as e:
        raise XmlEncodingError(
            f"Character {xml_text[e.start]!r} at position {e.start} is outside ISO-8859-1"
        ) from e


def export_xml_as_base64(record):
    xml_text = record_to_xml(record)
    return base64.b64encode(encode_latin1(xml_text)).decode("ascii")


def xml_data_uri(encoded):
    return f"data:{XML_MIME_TYPE};base64,{encoded}"
