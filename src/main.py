from __future__ import annotations

from fastapi import FastAPI

from src.application.dtos.common_dto import HealthResponse, RootResponse
from src.infrastructure.api.error_handlers import register_error_handlers
from src.infrastructure.api.logging_config import configure_logging
from src.infrastructure.api.middlewares import add_default_middlewares
from src.infrastructure.api.routes.ai_routes import router as ai_router
from src.infrastructure.api.routes.project_routes import router as project_router
from src.infrastructure.api.routes.prompt_routes import router as prompt_router


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="AI Pipeline Backend",
        version="0.1.0",
        description="""
        ## AI Pipeline Backend API

        Runs AI image edits (background removal, object removal, denoise/deblur,
        face restoration, relighting, style transfer, background harmonization)
        inside long-lived model containers and keeps an undoable edit history
        per project.

        ### Features
        - **AI Operations**: one endpoint per pipeline under `/ai`
        - **Projects**: edit history with undo, revert and timeline under `/ai-projects`
        - **Prompt**: free-text instructions routed to a pipeline under `/prompt`

        ### Error Responses
        - **400 Bad Request**: Invalid parameters, nothing to undo, revert index out of range
        - **404 Not Found**: Project does not exist
        - **409 Conflict**: Original image already set
        - **429 Too Many Requests**: Classifier quota exceeded
        - **501 Not Implemented**: Feature not available from a prompt
        - **502 Bad Gateway**: Pipeline stage, download, upload or classifier failure
        - **503 Service Unavailable**: Execution unit could not be started
        - **504 Gateway Timeout**: Pipeline stage timed out
        """,
    )
    add_default_middlewares(app)
    register_error_handlers(app)

    @app.get(
        "/",
        response_model=RootResponse,
        summary="API Root",
        description="Get basic information about the API",
    )
    def root():
        """Get API root information."""
        return {"status": "ok", "service": "ai-pipeline-backend", "version": app.version}

    @app.get(
        "/health",
        response_model=HealthResponse,
        summary="Health Check",
        description="Check if the API service is running and healthy",
    )
    def health():
        """Check API health status."""
        return {"status": "healthy"}

    app.include_router(project_router)
    app.include_router(ai_router)
    app.include_router(prompt_router)
    return app


app = create_app()
