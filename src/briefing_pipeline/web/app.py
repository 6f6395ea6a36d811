from __future__ import annotations

import uuid
from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from briefing_pipeline import __version__
from briefing_pipeline.config import get_settings
from briefing_pipeline.generation.client import GenerationClient
from briefing_pipeline.generation.gemini import make_client
from briefing_pipeline.jobs.limits import PipelineConfig, get_pipeline_config
from briefing_pipeline.jobs.queue import JobQueue
from briefing_pipeline.jobs.runner import PipelineRunner
from briefing_pipeline.jobs.status import StatusReporter
from briefing_pipeline.jobs.store import JobStore
from briefing_pipeline.ops.metrics import REGISTRY
from briefing_pipeline.storage.artifacts import ArtifactStore
from briefing_pipeline.utils.log import logger, request_id_var
from briefing_pipeline.web.deps import configured_api_key
from briefing_pipeline.web.routes_jobs import router as jobs_router


def build_client(config: PipelineConfig) -> GenerationClient:
    s = get_settings()
    key = s.secret.gemini_api_key
    return make_client(
        config,
        api_key=key.get_secret_value() if key else "",
        base_url=str(s.gemini_base_url),
    )


async def request_context_middleware(request: Request, call_next: Callable[[Request], Any]) -> Response:
    """Correlate every log line of a request with its X-Request-ID."""
    rid = request.headers.get("x-request-id") or uuid.uuid4().hex
    token = request_id_var.set(rid)
    try:
        resp = await call_next(request)
        resp.headers.setdefault("x-request-id", rid)
        return resp
    finally:
        request_id_var.reset(token)


def create_app(
    *,
    config: PipelineConfig | None = None,
    client: GenerationClient | None = None,
) -> FastAPI:
    """
    Build the HTTP app. `config` and `client` default to the environment-driven ones;
    tests pass fakes.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        cfg = config or get_pipeline_config()
        store = JobStore(cfg.jobs_db)
        artifacts = ArtifactStore(cfg.data_dir)
        runner = PipelineRunner(store, client or build_client(cfg), artifacts, cfg)
        q = JobQueue(store, runner, concurrency=cfg.concurrency, job_timeout_s=cfg.job_timeout_s)

        app.state.pipeline_config = cfg
        app.state.job_store = store
        app.state.job_queue = q
        app.state.status_reporter = StatusReporter(store, artifacts)

        if not configured_api_key():
            logger.warning("api_key_unset", detail="APP_SECRET_KEY is empty; /api routes are open")
        await q.start()
        try:
            yield
        finally:
            await q.stop()

    app = FastAPI(title="briefing pipeline", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_settings().cors_origin_list(),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-API-Key", "X-Request-ID"],
    )
    app.middleware("http")(request_context_middleware)
    app.include_router(jobs_router)

    @app.get("/health")
    async def health():
        return {"ok": True}

    @app.get("/metrics")
    async def metrics():
        return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)

    return app
