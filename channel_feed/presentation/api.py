"""HTTP surface for the channel feed.

Routes:
- ``GET /``: liveness text
- ``GET /api/posts``: one page of logical posts
- ``GET /api/stats``: subscriber count with provenance
- ``POST /api/telegram/webhook``: Bot API update sink, always acknowledged
- ``GET /metrics``: Prometheus exposition
"""

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Final

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.concurrency import run_in_threadpool

from channel_feed.adapters.media_url_cache import MediaUrlCache
from channel_feed.adapters.repository_factory import create_repository
from channel_feed.adapters.telegram_bot_client import TelegramBotClient
from channel_feed.config.logging_config import get_logger
from channel_feed.config.settings import Settings, get_settings
from channel_feed.domain.exceptions import RepositoryError, ValidationError
from channel_feed.domain.protocols import FeedRepositoryProtocol, LiveStatsSource
from channel_feed.observability.tracing import REQUEST_ID_HEADER, correlation_scope
from channel_feed.services.channel_names import require_channel
from channel_feed.services.media_resolver import MediaResolver
from channel_feed.use_cases.get_channel_stats import get_channel_stats_use_case
from channel_feed.use_cases.get_feed_page import (
    PaginationPolicy,
    get_feed_page_use_case,
    parse_cursor,
)
from channel_feed.use_cases.ingest_channel_message import (
    ingest_channel_message_use_case,
)

logger = get_logger(__name__)

POSTS_LOAD_FAILED: Final[str] = "Failed to load posts"
STATS_LOAD_FAILED: Final[str] = "Failed to load stats"


@dataclass
class FeedServices:
    """Collaborators shared by all requests of one application instance."""

    settings: Settings
    repository: FeedRepositoryProtocol
    resolver: MediaResolver
    live_source: LiveStatsSource | None
    policy: PaginationPolicy
    bot_client: TelegramBotClient | None = None


def build_services(
    settings: Settings,
    *,
    repository: FeedRepositoryProtocol | None = None,
    resolver: MediaResolver | None = None,
    live_source: LiveStatsSource | None = None,
) -> FeedServices:
    """Wire default collaborators from settings, keeping any that were injected.

    The Bot API client is only created when a bot token is configured; without
    it media resolves to nothing and stats come from storage alone.
    """
    bot_client: TelegramBotClient | None = None
    token = settings.bot_token
    if token and (resolver is None or live_source is None):
        bot_client = TelegramBotClient(
            token,
            base_url=settings.telegram_api_base_url,
            timeout_seconds=settings.telegram_http_timeout_seconds,
        )
    elif not token:
        logger.warning("telegram_bot_token_missing", effect="media and live stats disabled")

    if repository is None:
        repository = create_repository(settings)
    if resolver is None:
        resolver = MediaResolver(
            bot_client, MediaUrlCache(ttl_seconds=settings.media_cache_ttl_seconds)
        )
    if live_source is None:
        live_source = bot_client

    return FeedServices(
        settings=settings,
        repository=repository,
        resolver=resolver,
        live_source=live_source,
        policy=PaginationPolicy.from_settings(settings),
        bot_client=bot_client,
    )


def get_services(request: Request) -> FeedServices:
    return request.app.state.services


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _parse_limit(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid limit: {value!r}") from exc


def _resolve_channel(raw: str | None, services: FeedServices) -> str:
    settings = services.settings
    return require_channel(
        raw if raw is not None and raw.strip() else settings.default_channel,
        lowercase=settings.lowercase_channel_names,
    )


router = APIRouter()


@router.get("/", response_class=PlainTextResponse)
def health() -> str:
    return "OK"


@router.get("/api/posts")
def list_posts(
    channel: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    cursor: str | None = Query(default=None),
    services: FeedServices = Depends(get_services),
) -> Response:
    try:
        channel_name = _resolve_channel(channel, services)
        page_size = _parse_limit(limit)
        posted_before = parse_cursor(cursor)
    except ValidationError as exc:
        logger.info("posts_request_rejected", error=str(exc))
        return _error(400, str(exc))

    try:
        page = get_feed_page_use_case(
            channel_name,
            services.repository,
            services.resolver,
            limit=page_size,
            cursor=posted_before,
            policy=services.policy,
        )
    except RepositoryError as exc:
        logger.error("posts_load_failed", channel=channel_name, error=str(exc))
        return _error(500, POSTS_LOAD_FAILED)

    return JSONResponse(content=page.model_dump(mode="json"))


@router.get("/api/stats")
def channel_stats(
    channel: str | None = Query(default=None),
    services: FeedServices = Depends(get_services),
) -> Response:
    try:
        channel_name = _resolve_channel(channel, services)
    except ValidationError as exc:
        logger.info("stats_request_rejected", error=str(exc))
        return _error(400, str(exc))

    try:
        record = get_channel_stats_use_case(
            channel_name, services.repository, services.live_source
        )
    except RepositoryError as exc:
        logger.error("stats_load_failed", channel=channel_name, error=str(exc))
        return _error(500, STATS_LOAD_FAILED)

    return JSONResponse(content=record.model_dump(mode="json"))


@router.post("/api/telegram/webhook")
async def telegram_webhook(
    request: Request, services: FeedServices = Depends(get_services)
) -> dict[str, bool]:
    body = await request.body()
    try:
        payload: Any = json.loads(body) if body else None
    except ValueError:
        logger.warning("webhook_body_not_json", size=len(body))
        return {"ok": True}

    if not isinstance(payload, dict):
        logger.warning("webhook_body_not_object")
        return {"ok": True}

    result = await run_in_threadpool(
        ingest_channel_message_use_case,
        payload,
        services.repository,
        lowercase_channel=services.settings.lowercase_channel_names,
    )
    logger.debug("webhook_processed", **result.model_dump())
    return {"ok": True}


@router.get("/metrics")
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def create_app(
    settings: Settings | None = None,
    *,
    repository: FeedRepositoryProtocol | None = None,
    resolver: MediaResolver | None = None,
    live_source: LiveStatsSource | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Application settings (global settings when None)
        repository: Row store override, built from settings when None
        resolver: Media resolver override
        live_source: Live stats source override

    Returns:
        Configured application
    """
    settings = settings or get_settings()
    services = build_services(
        settings,
        repository=repository,
        resolver=resolver,
        live_source=live_source,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "api_started",
            database_type=settings.database_type,
            default_channel=settings.default_channel,
            media_resolution_enabled=services.bot_client is not None,
        )
        yield
        if services.bot_client is not None:
            services.bot_client.close()
        close = getattr(services.repository, "close", None)
        if callable(close):
            close()
        logger.info("api_stopped")

    app = FastAPI(title="channel-feed", lifespan=lifespan)
    app.state.services = services

    @app.middleware("http")
    async def bind_correlation_id(request: Request, call_next: Any) -> Response:
        with correlation_scope(request.headers.get(REQUEST_ID_HEADER)) as correlation_id:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = correlation_id
            return response

    app.include_router(router)
    return app
