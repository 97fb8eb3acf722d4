"""
Upgrade Responder - FastAPI application

Answers `POST /v1/checkupgrade` with the configured version catalog and records
an anonymized telemetry point per request. Telemetry never affects the
response: geo, validation and store failures are logged and dropped.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import PlainTextResponse

from .bootstrap import AggregationBootstrapper
from .cache import BatchCache
from .config import Config
from .geo import HTTP_HEADER_X_FORWARDED_FOR, Locator, MaxMindLocator, public_ip_from_forwarded
from .models import CheckUpgradeRequest, CheckUpgradeResponse
from .points import TelemetryPointBuilder
from .response import UpgradeResponseGenerator
from .scarf import ScarfForwarder
from .schema import RequestSchema, load_request_schema_file
from .store import InfluxStore, Store
from .versions import VersionCatalog, load_response_config

logger = logging.getLogger(__name__)


class Server:
    def __init__(
        self,
        cfg: Config,
        catalog: VersionCatalog,
        request_schema: RequestSchema,
        locator: Optional[Locator] = None,
        store: Optional[Store] = None,
        scarf: Optional[ScarfForwarder] = None,
    ):
        self.cfg = cfg
        self.catalog = catalog
        self.request_schema = request_schema
        self.locator = locator
        self.store = store
        self.scarf = scarf or ScarfForwarder(cfg.scarf_endpoint, cfg.scarf_timeout_s)

        self.builder = TelemetryPointBuilder(request_schema)
        self.generator = UpgradeResponseGenerator(catalog, cfg.query_period)
        self.cache: Optional[BatchCache] = None
        self._cache_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        if self.store is None:
            logger.info("No InfluxDB configured, telemetry recording disabled")
            return

        bootstrapper = AggregationBootstrapper(self.store, self.cfg.database, self.cfg.query_period)
        await asyncio.to_thread(bootstrapper.run)

        self.cache = BatchCache(
            self.store,
            self.cfg.database,
            sync_interval=self.cfg.cache_sync_interval_s,
            cache_size=self.cfg.cache_size,
        )
        self._cache_task = asyncio.create_task(self.cache.run(), name="batch_cache_loop")

    async def stop(self) -> None:
        if self.cache is not None and self._cache_task is not None:
            self.cache.stop()
            await self._cache_task
            logger.info(
                "Telemetry flushed on shutdown (written=%d dropped=%d)",
                self.cache.points_written,
                self.cache.points_dropped,
            )
        await self.scarf.aclose()
        if self.store is not None:
            self.store.close()
        if self.locator is not None:
            self.locator.close()

    async def record_request(self, req: CheckUpgradeRequest, client_ip: str) -> None:
        """Best-effort: never raises into the request handler."""
        try:
            self.scarf.send_event(req.version, client_ip)
            if self.cache is None:
                return

            # the IP is used to find the location but is never stored
            location = self.locator.lookup(client_ip) if self.locator is not None else None
            point = self.builder.build(req, location)
            if point is not None:
                await self.cache.add_point(point)
        except Exception:
            logger.exception("Failed to record request")


def _decode_error_text(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()) if x != "body")
        parts.append(f"{loc}: {err.get('msg', '')}" if loc else str(err.get("msg", "")))
    return "; ".join(parts) or "invalid request body"


def create_app(
    cfg: Config,
    *,
    catalog: Optional[VersionCatalog] = None,
    request_schema: Optional[RequestSchema] = None,
    locator: Optional[Locator] = None,
    store: Optional[Store] = None,
    scarf: Optional[ScarfForwarder] = None,
) -> FastAPI:
    """
    Build the application. Catalog, schema and geo database are loaded here so
    any malformed input fails before the server starts listening.
    """
    if catalog is None:
        catalog = load_response_config(cfg.response_config_path)
    if request_schema is None:
        request_schema = load_request_schema_file(cfg.request_schema_path)
    if locator is None:
        locator = MaxMindLocator(cfg.geodb_path)
    if store is None and cfg.telemetry_enabled:
        store = InfluxStore(cfg.influxdb_url, cfg.influxdb_user, cfg.influxdb_pass)

    server = Server(cfg, catalog, request_schema, locator=locator, store=store, scarf=scarf)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Upgrade responder starting (database=%s)", cfg.database)
        await server.start()
        try:
            yield
        finally:
            await server.stop()
            logger.info("Upgrade responder stopped")

    app = FastAPI(title=f"UpgradeResponder-{cfg.application_name}", lifespan=lifespan)
    app.state.server = server

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError) -> PlainTextResponse:
        return PlainTextResponse(_decode_error_text(exc), status_code=400)

    @app.post("/v1/checkupgrade", response_model=CheckUpgradeResponse)
    async def check_upgrade(req: CheckUpgradeRequest, request: Request) -> CheckUpgradeResponse:
        client_ip = public_ip_from_forwarded(request.headers.getlist(HTTP_HEADER_X_FORWARDED_FOR))
        await server.record_request(req, client_ip)
        return server.generator.generate(req)

    @app.get("/v1/healthcheck")
    async def healthcheck() -> Response:
        return Response(status_code=200)

    return app
