from typing import Optional

from fastapi import APIRouter, File, Request, UploadFile
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from receipt_service.models.pipeline import PipelineState
from receipt_service.models.schema import ErrorResponse, ParsedReceipt, ReceiptImage
from receipt_service.pipeline.receipt_pipeline import OCR_UNAVAILABLE_MESSAGE, ReceiptPipeline
from receipt_service.utils.helpers.exceptions import BackendUnavailable, UploadValidationError

ERROR_RESPONSES = {
    UploadValidationError.status_code: {"model": ErrorResponse, "description": "No file or file too large"},
    BackendUnavailable.status_code: {"model": ErrorResponse, "description": "No OCR backend produced text"},
}

router = APIRouter()


def _pipeline(request: Request) -> ReceiptPipeline:
    return request.app.state.pipeline


def _error_response(status_code: int, error: ErrorResponse) -> JSONResponse:
    content = error.model_dump()
    if error.debug is None:
        content.pop("debug")
    return JSONResponse(status_code=status_code, content=content)


async def _read_upload(receipt: Optional[UploadFile], limit: int) -> Optional[ReceiptImage]:
    if receipt is None:
        return None
    # read one byte past the limit so oversized uploads are detected without buffering all of them
    content = await receipt.read(limit + 1)
    return ReceiptImage(content=content, media_type=receipt.content_type, filename=receipt.filename)


# path used by the tracker frontend
@router.post("/api/v1/parse/receipt", response_model=ParsedReceipt, include_in_schema=False)
@router.post("/receipt-parse", response_model=ParsedReceipt, responses=ERROR_RESPONSES)
async def parse_receipt(request: Request, receipt: Optional[UploadFile] = File(None)):
    """Parse an uploaded receipt image into structured transaction fields."""
    pipeline = _pipeline(request)
    upload = await _read_upload(receipt, pipeline.settings.max_upload_bytes)

    run = await run_in_threadpool(pipeline.run, upload)

    if run.state is PipelineState.REJECTED:
        return _error_response(run.rejection.status_code, ErrorResponse(message=str(run.rejection)))

    if run.state is PipelineState.OCR_UNAVAILABLE:
        debug = None if pipeline.settings.is_production else run.debug_payload()
        return _error_response(
            BackendUnavailable.status_code, ErrorResponse(message=OCR_UNAVAILABLE_MESSAGE, debug=debug)
        )

    return run.receipt
