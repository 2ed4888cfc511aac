from fastapi import FastAPI, UploadFile, File, HTTPException, Body, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel, ValidationError
import base64
import logging

from settings import Settings, load_settings
from project_record import ProjectRecord
from validation import validate_form
from metrics import calculate_project_summary
from export_xml import (
    XML_FILENAME,
    XML_MIME_TYPE,
    encode_latin1,
    export_xml_as_base64,
    record_to_xml,
    xml_data_uri,
)
from extraction import (
    ExtractionError,
    InvalidModelReplyError,
    InvalidPdfError,
    MissingApiKeyError,
    PdfExtractor,
)

_startup_settings = load_settings()

logging.basicConfig(
    level=getattr(logging, _startup_settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("dic_server")

EXPORT_FAILED_MESSAGE = "Se ha producido un error al generar el archivo XML."
FORM_ERRORS_MESSAGE = "Se encontraron errores en el formulario. Por favor, corríjalos antes de exportar."

app = FastAPI(
    title="DIC Urbanistic Project Filing API",
    version="0.1.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_startup_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class PdfPayload(BaseModel):
    pdfBase64: str = ""


def get_settings() -> Settings:
    return load_settings()


def get_pdf_extractor(settings: Settings = Depends(get_settings)) -> PdfExtractor:
    try:
        return PdfExtractor(settings.gemini_api_key, settings.gemini_model)
    except MissingApiKeyError as e:
        raise HTTPException(status_code=500, detail=str(e))


def _parse_record(payload: dict) -> ProjectRecord:
    try:
        return ProjectRecord.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))


def _validated_record(payload: dict) -> ProjectRecord:
    errors = validate_form(payload)
    if errors:
        raise HTTPException(
            status_code=422,
            detail={"message": FORM_ERRORS_MESSAGE, "errors": errors},
        )
    return _parse_record(payload)


def _run_extraction(extractor: PdfExtractor, pdf_base64: str):
    try:
        record = extractor.extract(pdf_base64)
    except InvalidPdfError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InvalidModelReplyError as e:
        logger.warning("Discarding model reply that is not JSON (%d chars)", len(e.raw))
        raise HTTPException(status_code=502, detail={"error": str(e), "raw": e.raw})
    except ValidationError as e:
        raise HTTPException(status_code=502, detail=e.errors(include_url=False, include_context=False))
    except ExtractionError as e:
        raise HTTPException(status_code=500, detail=str(e))
    except Exception as e:
        logger.exception("PDF extraction failed")
        raise HTTPException(status_code=500, detail=str(e))

    return record.to_json()


@app.get("/")
def ping():
    return {
        "status": "Ok",
        "message": "Server is running",
    }


@app.get("/projects/blank")
def blank_project():
    return ProjectRecord().to_json()


@app.post("/extract")
async def extract_from_upload(
    file: UploadFile = File(...),
    extractor: PdfExtractor = Depends(get_pdf_extractor),
):
    # Validate File Extension
    if not (file.filename or "").lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="Only PDF files are supported.")

    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="No se ha proporcionado el contenido del PDF.")

    # The model call blocks; keep it off the event loop
    return await run_in_threadpool(_run_extraction, extractor, base64.b64encode(content).decode("ascii"))


@app.post("/extract/base64")
def extract_from_base64(
    payload: PdfPayload,
    extractor: PdfExtractor = Depends(get_pdf_extractor),
):
    if not payload.pdfBase64:
        raise HTTPException(status_code=400, detail="No se ha proporcionado el contenido del PDF.")

    return _run_extraction(extractor, payload.pdfBase64)


@app.post("/validate")
async def validate_project(payload: dict = Body(...)):
    errors = validate_form(payload)
    return {
        "valid": not errors,
        "errors": errors,
    }


@app.post("/projects/summary")
async def project_summary(payload: dict = Body(...)):
    record = _parse_record(payload)
    return calculate_project_summary(record)


@app.post("/export/xml")
async def export_xml(payload: dict = Body(...)):
    record = _validated_record(payload)

    try:
        encoded = export_xml_as_base64(record)
    except Exception:
        logger.exception("XML export failed")
        raise HTTPException(status_code=500, detail=EXPORT_FAILED_MESSAGE)

    logger.info(
        "Exported DIC XML: %d parcels, %d adjoining owners",
        len(record.parcelas_afectadas),
        len(record.propietarios_colindantes),
    )
    return {
        "filename": XML_FILENAME,
        "base64": encoded,
        "data_uri": xml_data_uri(encoded),
    }


@app.post("/export/xml/download")
async def export_xml_download(payload: dict = Body(...)):
    record = _validated_record(payload)

    try:
        content = encode_latin1(record_to_xml(record))
    except Exception:
        logger.exception("XML export failed")
        raise HTTPException(status_code=500, detail=EXPORT_FAILED_MESSAGE)

    return Response(
        content=content,
        media_type=XML_MIME_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{XML_FILENAME}"'},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
