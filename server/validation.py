import re

from utils.formatting import to_number

EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")

REQUIRED_MESSAGE = "El nombre es obligatorio."
EMAIL_MESSAGE = "El formato del correo electrónico no es válido."
POSITIVE_MESSAGE = "Debe ser un valor positivo."

PARAMETER_NUMERIC_FIELDS = [
    "superficieOcupada",
    "superficieConstruida",
    "edificabilidad",
    "numeroPlantas",
    "altura",
    "volumen",
    "separacionAlEjeCaminos",
    "separacionACaminos",
    "separacionALindes",
    "costeTransformacion",
    "costeTotal",
]
VIAL_NUMERIC_FIELDS = ["superficieOcupada", "costeTransformacion"]


def _section(data, key):
    value = data.get(key) if isinstance(data, dict) else None
    return value if isinstance(value, dict) else {}


def _rows(data, key):
    value = data.get(key) if isinstance(data, dict) else None
    return value if isinstance(value, list) else []


def is_valid_email(value):
    return bool(EMAIL_PATTERN.search(value))


def is_non_negative_number(value):
    # Empty cells are allowed, the form does not require urban parameters
    if value is None or str(value).strip() == "":
        return True
    # Checkbox-style true/false count as 1 and 0 in the form
    if isinstance(value, bool):
        return True
    number = to_number(value)
    return number is not None and number >= 0


def _validate_rows(rows, fields):
    row_errors = []
    has_errors = False
    for row in rows:
        row = row if isinstance(row, dict) else {}
        errors = {}
        for field in fields:
            if not is_non_negative_number(row.get(field)):
                errors[field] = POSITIVE_MESSAGE
                has_errors = True
        row_errors.append(errors)
    return row_errors, has_errors


def validate_form(data):
    """
    Checks the raw camelCase form payload before export.

    Returns a mapping shaped like the record holding one message per invalid
    field; an empty mapping means the form can be exported.
    """
    errors = {}

    solicitante = _section(data, "datosSolicitante")
    if not solicitante.get("nombreRazonSocial"):
        errors.setdefault("datosSolicitante", {})["nombreRazonSocial"] = REQUIRED_MESSAGE

    email = solicitante.get("correoElectronico")
    if email and not is_valid_email(str(email)):
        errors.setdefault("datosSolicitante", {})["correoElectronico"] = EMAIL_MESSAGE

    representante = _section(data, "representanteNotificacion")
    email = representante.get("correoElectronico")
    if email and not is_valid_email(str(email)):
        errors.setdefault("representanteNotificacion", {})["correoElectronico"] = EMAIL_MESSAGE

    params = _section(data, "parametrosUrbanisticos")
    construcciones, bad_construcciones = _validate_rows(
        _rows(params, "construcciones"), PARAMETER_NUMERIC_FIELDS
    )
    instalaciones, bad_instalaciones = _validate_rows(
        _rows(params, "instalaciones"), PARAMETER_NUMERIC_FIELDS
    )
    viales, bad_viales = _validate_rows(_rows(params, "viales"), VIAL_NUMERIC_FIELDS)

    if bad_construcciones or bad_instalaciones or bad_viales:
        errors["parametrosUrbanisticos"] = {
            "construcciones": construcciones,
            "instalaciones": instalaciones,
            "viales": viales,
        }

    return errors
