import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from civicflow.core.config import get_settings
from civicflow.core.errors import WorkflowError
from civicflow.core.logging import configure_logging
from civicflow.core.middleware import RequestIdMiddleware
from civicflow.api.v1.router import v1_router

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(WorkflowError)
    async def workflow_error(request: Request, exc: WorkflowError):
        logger.warning(
            exc.message,
            extra={
                "error": type(exc).__name__,
                "path": request.url.path,
                "method": request.method,
                "request_id": getattr(request.state, "request_id", None),
            },
        )
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
    )

    # Middleware: Request ID
    app.add_middleware(RequestIdMiddleware, header_name=settings.request_id_header)

    register_error_handlers(app)

    # API v1
    app.include_router(v1_router, prefix=settings.api_prefix)

    return app


app = create_app()
