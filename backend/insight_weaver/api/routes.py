import logging
from fastapi import APIRouter, HTTPException, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from insight_weaver.core.schemas import AnalysisResult, AnalyzeRequest
from insight_weaver.core.errors import (
    ErrorCodes,
    InvalidPayloadError,
    PipelineError,
    UnrecoverableInputError,
    get_error_response,
)
from insight_weaver.core.config import get_settings
from insight_weaver.core.sanitization import sanitize_for_logging
from insight_weaver.services.pipeline import AnalysisService, StaticInsightSource

logger = logging.getLogger(__name__)

router = APIRouter()

# Shared with main.py, which registers it on app.state for slowapi
limiter = Limiter(key_func=get_remote_address)


def _analyze_rate_limit() -> str:
    return f"{get_settings().rate_limit_per_minute}/minute"


def _raise_error(status_code: int, error_code: str, correlation_id: str, detail: str = None):
    error_info = get_error_response(error_code, detail)
    error_info['correlation_id'] = correlation_id
    raise HTTPException(status_code=status_code, detail=error_info)


@router.get("/health")
async def health_check():
    return {"status": "ok"}


def _check_dataset_size(payload: AnalyzeRequest, correlation_id: str) -> None:
    settings = get_settings()
    data_rows = max(len(payload.data) - 1, 0)
    widest = max((len(row) for row in payload.data), default=0)

    if data_rows > settings.max_dataset_rows:
        _raise_error(
            413, ErrorCodes.DATASET_TOO_LARGE, correlation_id,
            f"Maximum is {settings.max_dataset_rows} rows. This dataset has {data_rows}."
        )
    if widest > settings.max_dataset_columns:
        _raise_error(
            413, ErrorCodes.DATASET_TOO_LARGE, correlation_id,
            f"Maximum is {settings.max_dataset_columns} columns. This dataset has {widest}."
        )


@router.post("/analyze", response_model=AnalysisResult)
@limiter.limit(_analyze_rate_limit)
async def analyze_dataset(request: Request, payload: AnalyzeRequest):
    """
    Validate the generator's chart suggestions against the dataset and
    return only render-ready, aggregated chart datasets.

    Rate limited per IP address (RATE_LIMIT_PER_MINUTE).
    """
    correlation_id = getattr(request.state, 'correlation_id', 'unknown')
    _check_dataset_size(payload, correlation_id)

    service: AnalysisService = request.app.state.analysis_service
    try:
        return await service.analyze(
            payload.data,
            payload.perspective,
            StaticInsightSource(payload.insights_response),
            correlation_id=correlation_id,
        )
    except UnrecoverableInputError as e:
        logger.warning(f"Dataset rejected: {e.message}")
        _raise_error(400, e.code, correlation_id, e.message)
    except InvalidPayloadError as e:
        logger.warning(f"Insight response rejected: {e.message}")
        _raise_error(422, e.code, correlation_id, e.message)
    except PipelineError as e:
        logger.error(f"Analysis failed: {e.message}", exc_info=True)
        _raise_error(500, ErrorCodes.PROCESSING_ERROR, correlation_id)
    except Exception as e:
        logger.error(
            f"Unexpected error analyzing dataset for perspective "
            f"'{sanitize_for_logging(payload.perspective)}': {e}",
            exc_info=True
        )
        _raise_error(500, ErrorCodes.UNKNOWN_ERROR, correlation_id)
