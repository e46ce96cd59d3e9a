"""Beastwatch entry point.

Initializes all components and starts the server:
  Settings -> Database -> CooldownStore -> GraphQLClient -> FcmPushClient
  -> JobRunner -> CheckScheduler -> App -> Uvicorn

Uses Starlette lifespan to manage component lifecycle on the same
event loop as uvicorn. ``beastwatch --once`` performs a single run
instead and exits 0 on ok, 1 on error.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from starlette.applications import Starlette

from beastwatch.care.reconciler import Reconciler
from beastwatch.care.rules import RuleEngine
from beastwatch.config import Settings
from beastwatch.jobs.runner import JobRunner
from beastwatch.jobs.scheduler import CheckScheduler
from beastwatch.notify.credentials import GoogleTokenSource, StaticTokenSource, TokenSource
from beastwatch.notify.dispatcher import Dispatcher
from beastwatch.notify.gate import CooldownGate
from beastwatch.notify.push import FcmPushClient
from beastwatch.source.client import GraphQLClient
from beastwatch.source.pages import PageFetcher
from beastwatch.storage.cooldowns import CooldownStore
from beastwatch.storage.database import Database
from beastwatch.storage.migrator import run_migrations

logger = logging.getLogger(__name__)


def build_token_source(settings: Settings) -> TokenSource:
    """Fixed FCM_ACCESS_TOKEN when set, otherwise refreshing Google credentials."""
    if settings.fcm_access_token:
        logger.warning("Using fixed FCM_ACCESS_TOKEN: it is never refreshed and will expire")
        return StaticTokenSource(settings.fcm_access_token, settings.fcm_project_id or None)
    return GoogleTokenSource(settings.fcm_credentials_file)


async def create_components(settings: Settings, start_scheduler: bool = True) -> dict:
    """Initialize all components in dependency order.

    Returns dict with all components for lifespan storage.
    """
    database = Database(settings)
    await database.connect()
    await run_migrations(database.engine)

    graphql = GraphQLClient(settings.graphql_url, timeout=settings.http_timeout)
    push = FcmPushClient(
        project_id=settings.fcm_project_id,
        tokens=build_token_source(settings),
        base_url=settings.fcm_base_url,
        timeout=settings.http_timeout,
    )

    runner = JobRunner(
        fetcher=PageFetcher(
            graphql,
            page_size=settings.page_size,
            max_pages=settings.max_pages,
            timestamp_unit=settings.source_timestamp_unit,
        ),
        reconciler=Reconciler(),
        rules=RuleEngine(settings.vital_threshold),
        gate=CooldownGate(CooldownStore(database), settings.cooldown_window_ms),
        dispatcher=Dispatcher(push),
        settings=settings,
    )

    scheduler = None
    if start_scheduler and settings.scheduler_enabled:
        scheduler = CheckScheduler(runner, settings)
        await scheduler.start()

    return {
        "database": database,
        "graphql": graphql,
        "push": push,
        "runner": runner,
        "scheduler": scheduler,
    }


async def shutdown_components(components: dict) -> None:
    """Graceful shutdown in reverse order."""
    logger.info("Shutting down Beastwatch...")

    scheduler = components.get("scheduler")
    if scheduler:
        await scheduler.stop()

    push = components.get("push")
    if push:
        await push.close()

    graphql = components.get("graphql")
    if graphql:
        await graphql.close()

    database = components.get("database")
    if database:
        await database.disconnect()

    logger.info("Beastwatch shutdown complete.")


def build_app(settings: Settings) -> Starlette:
    """Build the Starlette app. Components are created in the lifespan."""
    components: dict = {}

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        components.update(await create_components(settings))
        app.state.components = components
        logger.info(
            "Beastwatch started (threshold=%d, cooldown=%dms, test_mode=%s)",
            settings.vital_threshold,
            settings.cooldown_window_ms,
            settings.test_mode,
        )
        yield
        await shutdown_components(components)

    from beastwatch.api.rest import create_app

    return create_app(
        runner=_lazy_component(components, "runner"),
        database=_lazy_component(components, "database"),
        lifespan=lifespan,
    )


class _LazyProxy:
    """Proxy that defers attribute access to a dict-backed component.

    Allows create_app() to receive component references before lifespan
    has initialized them.
    """

    def __init__(self, components: dict, key: str) -> None:
        object.__setattr__(self, "_components", components)
        object.__setattr__(self, "_key", key)

    def _resolve(self):
        components = object.__getattribute__(self, "_components")
        key = object.__getattribute__(self, "_key")
        obj = components.get(key)
        if obj is None:
            raise RuntimeError(f"Component '{key}' not yet initialized: lifespan hasn't started")
        return obj

    def __getattr__(self, name):
        return getattr(self._resolve(), name)


def _lazy_component(components: dict, key: str) -> _LazyProxy:
    """Create a lazy proxy for a component that will be initialized in lifespan."""
    return _LazyProxy(components, key)


async def run_once(settings: Settings) -> int:
    """Single run without the server. Returns a process exit code."""
    components = await create_components(settings, start_scheduler=False)
    try:
        report = await components["runner"].run()
    finally:
        await shutdown_components(components)
    logger.info("Run finished: %s", report.to_dict())
    return 0 if report.ok else 1


def main() -> None:
    """Entry point: parse settings, then serve or run once."""
    parser = argparse.ArgumentParser(prog="beastwatch")
    parser.add_argument("--once", action="store_true", help="perform a single run and exit")
    args = parser.parse_args()

    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    logger.info("Data source: %s", settings.graphql_url)
    logger.info("Database: %s:%s/%s", settings.db_host, settings.db_port, settings.db_name)
    if settings.test_mode:
        logger.warning("Test mode enabled: runs send one diagnostic notification only")
    if not settings.fcm_access_token and not settings.fcm_credentials_file:
        logger.info("FCM credentials: application default credentials")

    if args.once:
        sys.exit(asyncio.run(run_once(settings)))

    app = build_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
