"""FastAPI entrypoint that exposes the chat agent via AG-UI."""

from __future__ import annotations

import argparse
import logging
from typing import List, Optional, Sequence

from agent_framework.ag_ui import add_agent_framework_fastapi_endpoint
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import uvicorn

from .config import AppSettings
from .framework_agent import ChatFrameworkAgent
from .observability import initialize_tracing


class ModelInfo(BaseModel):
    display_name: str
    endpoint_id: str
    allowed_temperatures: List[float]
    default: bool = False


class ModelCatalogResponse(BaseModel):
    models: List[ModelInfo]
    temperature: float
    chain_of_thought: bool
    max_input_length: int


def create_app(
    settings: AppSettings,
    *,
    allow_origins: Sequence[str] | None = None,
) -> FastAPI:
    """Create a FastAPI app exposing the chat agent as an AG-UI endpoint."""

    app = FastAPI(title="AI Chat Agent")

    origins = list(allow_origins) if allow_origins else ["*"]
    allow_credentials = origins != ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    add_agent_framework_fastapi_endpoint(
        app=app,
        agent=ChatFrameworkAgent(settings=settings),
        path="/chat",
    )

    @app.get("/models", response_model=ModelCatalogResponse)
    async def list_models() -> ModelCatalogResponse:
        return ModelCatalogResponse(
            models=[
                ModelInfo(
                    display_name=spec.display_name,
                    endpoint_id=spec.endpoint_id,
                    allowed_temperatures=list(spec.allowed_temperatures),
                    default=spec == settings.initial_model,
                )
                for spec in settings.catalog
            ],
            temperature=settings.initial_temperature,
            chain_of_thought=settings.chain_of_thought,
            max_input_length=settings.max_input_length,
        )

    @app.get("/health")
    async def health() -> dict[str, str]:  # pragma: no cover - simple health probe
        return {"status": "ok"}

    return app


def run_agui_server(
    settings: AppSettings,
    *,
    host: str = "127.0.0.1",
    port: int = 8081,
    allow_origins: Sequence[str] | None = None,
    reload: bool = False,
    log_level: str = "info",
    tracing_enabled: bool = False,
) -> None:
    """Start the AG-UI FastAPI server."""

    if tracing_enabled:
        initialize_tracing()
    app = create_app(settings=settings, allow_origins=allow_origins)
    uvicorn.run(
        app,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m ai_chat_agent.agui",
        description="Launch the AI chat agent as an AG-UI compatible FastAPI service.",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface for the AG-UI server (default: 127.0.0.1).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8081,
        help="Port for the AG-UI server (default: 8081).",
    )
    parser.add_argument(
        "--allow-origin",
        action="append",
        dest="allow_origin",
        help="Optional CORS origin(s) to allow. Defaults to '*' if not provided.",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Run the server in auto-reload development mode.",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        help="Logging level for uvicorn (default: info).",
    )
    parser.add_argument(
        "--tracing",
        action="store_true",
        help="Export OpenTelemetry traces to MAF_OTLP_ENDPOINT.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO)
    args = _parse_args(argv)
    try:
        settings = AppSettings.load()
    except RuntimeError as exc:
        logging.error("Failed to load AppSettings: %s", exc)
        raise SystemExit(1) from exc

    run_agui_server(
        settings=settings,
        host=args.host,
        port=args.port,
        allow_origins=args.allow_origin,
        reload=args.reload,
        log_level=args.log_level,
        tracing_enabled=args.tracing,
    )


if __name__ == "__main__":
    main()
