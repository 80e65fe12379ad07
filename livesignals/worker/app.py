"""
Relay Worker HTTP Application
=============================

aiohttp.web application exposing the relay endpoints:

- ``GET /health``
- ``POST /summarize`` (Workers AI with model fallback)
- ``GET /github-releases?repos=owner/name,...``
- ``GET /rss-feed?urls=https://...,...``
- ``GET /proxy?url=https://...`` (allowlisted hosts only)

Every response carries CORS headers derived from ``worker.allowed_origin``.
"""

from contextlib import AsyncExitStack
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import aiohttp
from aiohttp import web

from .inference import (
    CloudflareAIBinding,
    InferenceBinding,
    build_default_prompt,
    run_with_model_fallback,
)
from .sources import WorkerSources
from ..config.feed_config import normalize_feed_url
from ..config.settings import LiveSignalsSettings, get_settings
from ..ingestion.feed_normalizer import FeedNormalizer
from ..recovery.retry_logic import RetryConfig
from ..storage.kv_store import KeyValueStore, create_store
from ..storage.response_cache import ResponseCache, github_key, rss_key
from ..storage.upstream_cache import UpstreamCache
from ..utils.exceptions import ValidationError, ErrorCode
from ..utils.http import create_session
from ..utils.logging import get_logger_for_component
from ..utils.validators import HostAllowlist, hosts_of, is_valid_github_repo, parse_list_param


logger = get_logger_for_component("worker")


@dataclass
class WorkerContext:
    """Per-application dependencies shared by the handlers."""
    settings: LiveSignalsSettings
    session: aiohttp.ClientSession
    sources: WorkerSources
    upstream_cache: UpstreamCache
    response_cache: ResponseCache
    binding: Optional[InferenceBinding]
    default_feeds: list
    trusted_feeds: HostAllowlist
    trusted_proxy: HostAllowlist


CONTEXT_KEY = web.AppKey("livesignals_context", WorkerContext)


def cors_headers(settings: LiveSignalsSettings) -> dict:
    configured = settings.worker.allowed_origin
    origin = configured if configured and configured != "*" else "*"
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
        "Access-Control-Allow-Headers": "content-type,if-none-match,if-modified-since",
        "Access-Control-Max-Age": "86400",
        "Vary": "Origin",
    }


def _json_error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Answer preflights, map failures to JSON errors and attach CORS headers."""
    ctx = request.app[CONTEXT_KEY]

    if request.method == "OPTIONS":
        response = web.Response(status=204)
    else:
        try:
            response = await handler(request)
        except web.HTTPNotFound:
            response = _json_error("Not found", 404)
        except web.HTTPException as e:
            response = _json_error(e.reason, e.status)
        except ValidationError as e:
            status = 403 if e.error_code == ErrorCode.VALIDATION_UNTRUSTED_HOST else 400
            response = _json_error(str(e.args[0]), status)
        except Exception as e:
            logger.error(f"Unhandled worker error on {request.path}: {e}")
            response = _json_error(str(e) or "Unknown worker error", 500)

    response.headers.update(cors_headers(ctx.settings))
    return response


async def handle_health(request: web.Request) -> web.Response:
    now = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return web.json_response({"ok": True, "now": now})


async def handle_summarize(request: web.Request) -> web.Response:
    ctx = request.app[CONTEXT_KEY]
    if request.method != "POST":
        return _json_error("Method not allowed", 405)
    if ctx.binding is None:
        return _json_error("AI binding missing", 503)

    try:
        body = await request.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    prompt = body.get("prompt") or build_default_prompt(
        body.get("title"), body.get("content"), ctx.settings.worker.summarize_content_limit
    )
    model, text = await run_with_model_fallback(ctx.binding, ctx.settings.worker.models, prompt)

    return web.json_response({
        "response": text,
        "model": model,
        "provider": "cloudflare-workers-ai",
    })


async def handle_github_releases(request: web.Request) -> web.Response:
    ctx = request.app[CONTEXT_KEY]
    defaults = ctx.settings.feeds.github_repos
    candidates = [
        repo for repo in parse_list_param(request.query.get("repos"), defaults)
        if is_valid_github_repo(repo)
    ][: ctx.settings.worker.max_repos]
    repos = candidates or list(defaults)

    key = github_key(repos)
    payload = ctx.response_cache.get(key)
    if payload is None:
        items = await ctx.sources.fetch_github_releases(repos)
        payload = {"items": [item.to_wire() for item in items]}
        ctx.response_cache.put(key, payload)

    return web.json_response(payload, headers={"Cache-Control": ctx.response_cache.cache_control})


async def handle_rss_feed(request: web.Request) -> web.Response:
    ctx = request.app[CONTEXT_KEY]
    candidates = [
        url for url in (
            normalize_feed_url(u) for u in parse_list_param(request.query.get("urls"), ctx.default_feeds)
        )
        if ctx.trusted_feeds.is_trusted(url)
    ][: ctx.settings.worker.max_feeds]
    feeds = candidates or list(ctx.default_feeds)

    key = rss_key(feeds)
    payload = ctx.response_cache.get(key)
    if payload is None:
        items = await ctx.sources.fetch_rss_feeds(feeds)
        payload = {"items": [item.to_wire() for item in items]}
        ctx.response_cache.put(key, payload)

    return web.json_response(payload, headers={"Cache-Control": ctx.response_cache.cache_control})


async def handle_proxy(request: web.Request) -> web.Response:
    ctx = request.app[CONTEXT_KEY]
    upstream = ctx.trusted_proxy.validate(request.query.get("url"), field_name="url")

    record = await ctx.upstream_cache.fetch(upstream)
    return web.Response(
        body=record.body.encode("utf-8"),
        headers={
            "Content-Type": record.content_type,
            "Cache-Control": ctx.response_cache.cache_control,
            "ETag": record.etag or "",
            "Last-Modified": record.last_modified or "",
        },
    )


def create_app(
    settings: Optional[LiveSignalsSettings] = None,
    store: Optional[KeyValueStore] = None,
    session: Optional[aiohttp.ClientSession] = None,
    binding: Optional[InferenceBinding] = None,
) -> web.Application:
    """Build the relay worker application.

    Args:
        settings: Application settings (defaults to global settings)
        store: Key-value store for the upstream and response caches; one is
            built from settings (and closed on cleanup) when omitted
        session: Outbound aiohttp session; one is created for the app when omitted
        binding: Inference binding; built from Cloudflare credentials when omitted

    Returns:
        Configured aiohttp application
    """
    settings = settings or get_settings()
    app = web.Application(middlewares=[cors_middleware])

    async def worker_context(app: web.Application):
        async with AsyncExitStack() as stack:
            http = session
            if http is None:
                http = await stack.enter_async_context(
                    create_session(timeout=settings.limits.request_timeout)
                )
            kv = store
            if kv is None:
                kv = create_store(settings.cache.store_path)
                stack.callback(kv.close)
            app[CONTEXT_KEY] = _build_context(settings, http, kv, binding)
            yield

    app.cleanup_ctx.append(worker_context)

    app.router.add_route("*", "/health", handle_health)
    app.router.add_route("*", "/summarize", handle_summarize)
    app.router.add_route("*", "/github-releases", handle_github_releases)
    app.router.add_route("*", "/rss-feed", handle_rss_feed)
    app.router.add_route("*", "/proxy", handle_proxy)
    return app


def _build_context(settings: LiveSignalsSettings, http: aiohttp.ClientSession,
                   kv: KeyValueStore,
                   binding: Optional[InferenceBinding]) -> WorkerContext:
    retry_config = RetryConfig.from_settings(settings.retry.worker)
    upstream_cache = UpstreamCache(
        http, kv, retry_config=retry_config,
        ttl_seconds=settings.cache.conditional_ttl_seconds,
    )

    inference = binding
    if inference is None and settings.worker.has_inference_binding():
        inference = CloudflareAIBinding(
            http,
            settings.worker.cloudflare_account_id,
            settings.worker.cloudflare_api_token,
            retry_config=retry_config,
        )

    default_feeds = [normalize_feed_url(url) for url in settings.feeds.blog_feeds]
    feed_hosts = hosts_of(default_feeds)

    logger.info(
        "Worker ready",
        extra={"inference": inference is not None, "github_graphql": bool(settings.worker.github_token)},
    )
    return WorkerContext(
        settings=settings,
        session=http,
        sources=WorkerSources(
            http,
            upstream_cache,
            normalizer=FeedNormalizer(max_content=settings.worker.content_limit),
            github_token=settings.worker.github_token,
            retry_config=retry_config,
            items_per_feed=settings.feeds.items_per_feed,
        ),
        upstream_cache=upstream_cache,
        response_cache=ResponseCache(kv, ttl_seconds=settings.cache.response_ttl_seconds),
        binding=inference,
        default_feeds=default_feeds,
        trusted_feeds=HostAllowlist(feed_hosts),
        trusted_proxy=HostAllowlist(feed_hosts | {"api.github.com"}),
    )


def run_worker(settings: Optional[LiveSignalsSettings] = None,
               host: Optional[str] = None, port: Optional[int] = None) -> None:
    """Serve the worker until interrupted."""
    settings = settings or get_settings()
    host = host or settings.worker.host
    port = port or settings.worker.port
    logger.info(f"Starting relay worker on {host}:{port}")
    web.run_app(create_app(settings), host=host, port=port, print=None)
