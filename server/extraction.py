import base64
import binascii
import json
import logging
import math
import re

from google.ai import generativelanguage as glm

from project_record import ProjectRecord

logger = logging.getLogger("dic_server")

PDF_MIME_TYPE = "application/pdf"
_PDF_DATA_URI_PREFIX = re.compile(r"^data:application/pdf;base64$", re.IGNORECASE)

EXTRACTION_PROMPT = (
    "Analiza el PDF adjunto y extrae los datos relevantes en formato JSON.\n"
    "Devuelve exclusivamente un objeto JSON válido y puro, SIN encabezados, SIN markdown y SIN explicaciones.\n"
    "Usa las claves: datosSolicitante, representanteNotificacion, tipoDeUso, descripcion, "
    "parcelasAfectadas, parametrosUrbanisticos (construcciones, instalaciones, viales, tecnicoRedactor) "
    "y propietariosColindantes. Usa null para los datos que no aparezcan."
)


class ExtractionError(Exception):
    pass


class MissingApiKeyError(ExtractionError):
    pass


class InvalidPdfError(ExtractionError, ValueError):
    pass


class InvalidModelReplyError(ExtractionError, ValueError):
    def __init__(self, message, raw):
        super().__init__(message)
        self.raw = raw


def strip_pdf_data_uri(payload):
    """Accepts both "AAAA..." and "data:application/pdf;base64,AAAA..."."""
    prefix, sep, rest = payload.partition(",")
    if sep and _PDF_DATA_URI_PREFIX.match(prefix):
        return rest
    return payload


def clean_model_reply(text):
    reply = (text or "").strip()

    # Markdown fence around the whole reply
    if reply.startswith("```") and reply.endswith("```"):
        reply = re.sub(r"^```[^\n]*\n?", "", reply)
        reply = re.sub(r"\n?```$", "", reply)

    first_brace = reply.find("{")
    last_brace = reply.rfind("}")
    if first_brace != -1 and last_brace > first_brace:
        reply = reply[first_brace:last_brace + 1]

    return reply


def _nan_to_none(value):
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, dict):
        return {k: _nan_to_none(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_nan_to_none(v) for v in value]
    return value


def parse_model_reply(text):
    reply = clean_model_reply(text)
    try:
        data = json.loads(reply)
    except ValueError:
        raise InvalidModelReplyError("La respuesta de Gemini no es un JSON válido.", reply)

    if not isinstance(data, dict):
        raise InvalidModelReplyError("La respuesta de Gemini no es un objeto JSON.", reply)

    return _nan_to_none(data)


def _reply_text(response):
    if not response.candidates:
        return ""
    return "".join(part.text for part in response.candidates[0].content.parts)


class PdfExtractor:
    """
    Sends one PDF to Gemini and turns the reply into a ProjectRecord.

    Build one per request: the service client holds the API key and is not
    shared between requests.
    """

    def __init__(self, api_key, model_name, client=None):
        if not api_key:
            raise MissingApiKeyError("Falta la variable de entorno GEMINI_API_KEY")
        self.model_name = model_name
        self.client = client or glm.GenerativeServiceClient(client_options={"api_key": api_key})

    def _request(self, pdf_bytes):
        return glm.GenerateContentRequest(
            model=f"models/{self.model_name}",
            contents=[
                glm.Content(
                    role="user",
                    parts=[
                        glm.Part(inline_data=glm.Blob(mime_type=PDF_MIME_TYPE, data=pdf_bytes)),
                        glm.Part(text=EXTRACTION_PROMPT),
                    ],
                )
            ],
        )

    def extract_raw(self, pdf_base64):
        try:
            pdf_bytes = base64.b64decode(strip_pdf_data_uri(pdf_base64), validate=True)
        except (binascii.Error, ValueError):
            raise InvalidPdfError("El contenido del PDF no es base64 válido.")
        if not pdf_bytes:
            raise InvalidPdfError("No se ha proporcionado el contenido del PDF.")

        logger.info("Extracting form data with %s (%d bytes)", self.model_name, len(pdf_bytes))
        response = self.client.generate_content(request=self._request(pdf_bytes))
        reply = _reply_text(response)
        logger.info("Model reply received (%d chars)", len(reply))

        return parse_model_reply(reply)

    def extract(self, pdf_base64):
        return ProjectRecord.model_validate(self.extract_raw(pdf_base64))
