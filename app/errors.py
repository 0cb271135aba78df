from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.logging import get_logger
from app.services.evaluation.errors import EvaluationError

logger = get_logger(__name__)


async def _evaluation_error_handler(request: Request, exc: EvaluationError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("evaluation_error path=%s code=%s detail=%s", request.url.path, exc.code, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail, "code": exc.code})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(EvaluationError, _evaluation_error_handler)
