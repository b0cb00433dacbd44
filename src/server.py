"""
HTTP front end for the curation pipeline.

``GET /`` is a liveness check; ``POST /api/history`` runs one curation and returns the
pipeline output verbatim. Invalid input is a 400; any other failure is reported in the body
with status 200 so a failed upstream never looks like a crashed service.
"""

import logging
from typing import Any, Callable, Dict, Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from src.main import SERVICE_NAME, CurationPipeline, PipelineConfig, failure_response
from src.utils.error_monitoring import InvalidInputError, PipelineFailure

logger = logging.getLogger(__name__)


class HistoryRequest(BaseModel):
    """Body of ``POST /api/history``; both fields optional."""

    date: Optional[str] = None
    limit: Optional[Any] = None


def create_app(pipeline_factory: Optional[Callable[[], CurationPipeline]] = None) -> FastAPI:
    """Create the FastAPI application; ``pipeline_factory`` builds one pipeline per request."""
    factory = pipeline_factory or (lambda: CurationPipeline(PipelineConfig.from_env()))

    app = FastAPI(
        title="On This Day Curation API",
        version="1.0.0",
        description="Curated, date-corroborated historical events for a calendar day.",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.get("/")
    def healthcheck() -> Dict[str, Any]:
        return {"ok": True, "service": SERVICE_NAME}

    @app.post("/api/history")
    async def history(payload: Optional[HistoryRequest] = None) -> JSONResponse:
        body = payload or HistoryRequest()
        try:
            pipeline = factory()
        except Exception as e:  # noqa: BLE001
            logger.exception("Could not build the curation pipeline")
            return JSONResponse(
                status_code=200,
                content=failure_response(PipelineFailure.code, f"{type(e).__name__}: {e}"),
            )
        result = await pipeline.curate(body.date, body.limit)
        if not result.get("success") and result.get("error") == InvalidInputError.code:
            return JSONResponse(status_code=400, content=result)
        if not result.get("success"):
            logger.error(f"Curation failed: {result.get('detail')}")
        return JSONResponse(status_code=200, content=result)

    return app


def run_server(host: str = "0.0.0.0", port: int = 8080) -> None:
    logger.info(f"🌐 Serving {SERVICE_NAME} on {host}:{port}")
    uvicorn.run(create_app(), host=host, port=port)
