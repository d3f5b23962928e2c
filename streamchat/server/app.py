"""
FastAPI application exposing the chat streaming endpoint.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse

from streamchat.config import Configuration
from streamchat.exceptions import ConfigurationError, InvalidRequestError
from streamchat.llm.adapter import ProviderAdapter
from streamchat.llm.base import StreamingProvider
from streamchat.logging_utils import ErrorClassifier, configure_logging
from streamchat.server.handler import ChatStreamHandler

logger = structlog.get_logger(__name__)

ProviderFactory = Callable[[str, str], StreamingProvider]

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def gemini_provider_factory(api_key: str, model: str) -> StreamingProvider:
    from streamchat.llm.gemini import GeminiProvider

    return GeminiProvider(api_key=api_key, model=model)


def create_app(
    configuration: Configuration | None = None,
    provider_factory: ProviderFactory | None = None,
) -> FastAPI:
    """Build the ASGI app; ``provider_factory(api_key, model)`` picks the LLM."""
    configuration = configuration or Configuration()
    configure_logging(configuration.get_logging_config())
    server_config = configuration.get_server_config()
    make_provider = provider_factory or gemini_provider_factory

    # One provider (and its HTTP pools) per credential/model, shared by requests
    providers: dict[tuple[str, str], StreamingProvider] = {}

    def provider_for(api_key: str, model: str) -> StreamingProvider:
        key = (api_key, model)
        if key not in providers:
            providers[key] = make_provider(api_key, model)
        return providers[key]

    async def close_providers() -> None:
        while providers:
            _, provider = providers.popitem()
            aclose = getattr(provider, "aclose", None)
            if aclose is not None:
                await aclose()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Chat stream server starting",
            provider=configuration.active_provider,
            stream_path=server_config["stream_path"],
        )
        try:
            yield
        finally:
            await close_providers()
            logger.info("Chat stream server stopped")

    app = FastAPI(title="streamchat", lifespan=lifespan)

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok", "model": configuration.model}

    @app.post(server_config["stream_path"])
    async def chat_stream(request: Request) -> Response:
        # FAIL FAST: credential is checked before anything else
        try:
            api_key = configuration.llm_api_key
            model = configuration.model
        except ConfigurationError as e:
            status, category = ErrorClassifier.classify_error(e)
            logger.error(
                "Stream unavailable", error_category=category, error_message=str(e)
            )
            return JSONResponse(
                {"error": "Server configuration error"}, status_code=status
            )

        try:
            payload = await request.json()
        except ValueError:
            payload = None

        handler = ChatStreamHandler(
            adapter_factory=lambda: ProviderAdapter(provider_for(api_key, model))
        )
        try:
            handler.validate(payload)
        except InvalidRequestError as e:
            status, _ = ErrorClassifier.classify_error(e)
            return JSONResponse(
                {"error": str(e), "details": e.details}, status_code=status
            )

        return StreamingResponse(
            handler.frames(),
            media_type="text/event-stream",
            headers={**SSE_HEADERS, "X-Request-ID": handler.request_id},
        )

    return app
