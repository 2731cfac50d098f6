"""
Application entry point.

Wires the credential pool, proxy pool, caller quotas and the speech
orchestrator into one FastAPI app and starts the background sweeps.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src import __version__ as app_version
from src.api.admin import router as admin_router
from src.api.auth import router as auth_router
from src.api.public import router as public_router
from src.api.user_me import router as me_router
from src.clients.http_client import HTTPClientPool, close_http_clients
from src.clients.upstream import SpeechSynthesizer, TextGenerator
from src.config import Config, config
from src.core.exceptions import ExceptionHandlers, PoolServiceException
from src.core.logger import logger
from src.database import get_db, get_session_factory, init_db
from src.services.key_pool import CredentialRepository, PoolConfig, PoolManager
from src.services.key_pool.scheduler import PoolMaintenanceScheduler
from src.services.proxy_pool import ProxyPoolManager, ProxyRepository
from src.services.scored_pool.repository import SessionFactory
from src.services.speech.orchestrator import RequestOrchestrator
from src.services.system.scheduler import get_scheduler
from src.services.usage.recorder import UsageRecorder
from src.services.user_quota import AnonymousRateLimiter, UserQuotaService


def build_services(app: FastAPI, session_factory: SessionFactory, cfg: Config) -> None:
    """Construct every service and attach it to ``app.state``."""
    pool_config = PoolConfig.from_config(cfg)
    timeout = pool_config.store_timeout_seconds

    pool_manager = PoolManager(CredentialRepository(session_factory), pool_config)
    proxy_manager = ProxyPoolManager(ProxyRepository(session_factory), timeout)
    usage = UsageRecorder(session_factory, timeout)
    users = UserQuotaService(session_factory, cfg)

    app.state.pool_manager = pool_manager
    app.state.proxy_manager = proxy_manager
    app.state.user_service = users
    app.state.usage_recorder = usage
    app.state.orchestrator = RequestOrchestrator(
        pool=pool_manager,
        users=users,
        anonymous=AnonymousRateLimiter(usage, cfg.anonymous_monthly_limit),
        usage=usage,
        text_generator=TextGenerator(cfg),
        synthesizer=SpeechSynthesizer(cfg),
        proxies=proxy_manager,
        cfg=cfg,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> Any:
    logger.info("=" * 60)
    logger.info("Speech Key Pool v{}", app_version)
    logger.info("=" * 60)

    # Production refuses to start with an insecure configuration
    security_errors = config.validate_security_config()
    if security_errors:
        for error in security_errors:
            logger.error("[SECURITY] {}", error)
        if config.environment == "production":
            raise RuntimeError(
                "Security configuration errors detected. "
                "Please fix the following issues before starting in production:\n"
                + "\n".join(f"  - {e}" for e in security_errors)
            )

    config.log_startup_warnings()

    logger.info("Initialising database...")
    init_db()
    build_services(app, get_session_factory(), config)

    HTTPClientPool.get_default_client()

    task_scheduler = get_scheduler()
    maintenance = PoolMaintenanceScheduler(app.state.pool_manager, task_scheduler)
    await maintenance.start()
    task_scheduler.start()

    logger.info("Service started: http://{}:{}", config.host, config.port)

    yield

    logger.info("Shutting down...")
    await maintenance.stop()
    task_scheduler.stop()
    await close_http_clients()
    logger.info("Service stopped")


app = FastAPI(title="Speech Key Pool", version=app_version, lifespan=lifespan)

# More specific handlers win regardless of registration order
app.add_exception_handler(Exception, ExceptionHandlers.handle_generic_exception)  # type: ignore[arg-type]
app.add_exception_handler(HTTPException, ExceptionHandlers.handle_http_exception)  # type: ignore[arg-type]
app.add_exception_handler(PoolServiceException, ExceptionHandlers.handle_service_exception)  # type: ignore[arg-type]

app.include_router(auth_router)
app.include_router(admin_router)
app.include_router(me_router)
app.include_router(public_router)


@app.get("/health", tags=["System"])
async def health(db: Session = Depends(get_db)) -> dict[str, Any]:
    try:
        db.execute(text("SELECT 1"))
        database = "ok"
    except SQLAlchemyError as exc:
        logger.warning("Health check: database unreachable: {}", exc)
        database = "unavailable"
    return {
        "status": "ok" if database == "ok" else "degraded",
        "database": database,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": app_version,
    }


@app.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def main() -> Any:
    log_level = config.log_level.split()[0].lower()
    if log_level not in ["debug", "info", "warning", "error", "critical"]:
        log_level = "info"

    uvicorn.run(
        "src.main:app",
        host=config.host,
        port=config.port,
        log_level=log_level,
        reload=config.environment == "development",
        access_log=False,
    )


if __name__ == "__main__":
    main()
