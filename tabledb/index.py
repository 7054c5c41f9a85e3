"""
TableDB HTTP Service

Exposes the table store over HTTP:
- Whole-table reads and replacements
- Range index build and range queries
- Manual flush of queued writes
- Prometheus / JSON metrics and health

The app owns exactly one storage provider: the lifespan connects it on
startup and closes it (flushing pending writes) on shutdown.
"""

import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from tabledb import __version__
from tabledb.config import DEFAULT_CONFIG, TableDBConfig
from tabledb.engine import FastStorageProvider, open_provider
from tabledb.exceptions import EntityNotFound, InvalidRangeError, InvalidTableName, TableDBError
from tabledb.metrics import MetricsCollector, StructuredLogger
from tabledb.storage_engine import StorageProvider

logger = logging.getLogger(__name__)
logger_structured = StructuredLogger("tabledb-api")


# ============================================================================
# Pydantic Models
# ============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    backend: str
    uptime_seconds: float
    cached_tables: int


class TableResponse(BaseModel):
    """A table snapshot."""
    table: str
    count: int
    records: List[Dict[str, Any]]


class PutResponse(BaseModel):
    """Result of replacing a table."""
    status: str
    table: str
    count: int
    version: int


class IndexResponse(BaseModel):
    """Result of building a range index."""
    status: str
    table: str
    field: str
    indexed: int


class FlushResponse(BaseModel):
    """Per-table outcome of a manual flush (null = persisted)."""
    status: str
    tables: Dict[str, Optional[str]]


def parse_bound(raw: Optional[str]) -> Any:
    """Range bounds arrive as query strings; read them as JSON scalars."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _status_for(exc: TableDBError) -> int:
    if isinstance(exc, (InvalidTableName, InvalidRangeError)):
        return 400
    if isinstance(exc, EntityNotFound):
        return 404
    return 500


# ============================================================================
# Application Factory
# ============================================================================

def create_app(
    config: Optional[TableDBConfig] = None,
    provider: Optional[StorageProvider] = None,
) -> FastAPI:
    """
    Build the HTTP service around one storage provider.

    Args:
        config: Configuration, defaults to environment configuration
        provider: Pre-built provider, defaults to open_provider(config)
    """
    config = config or DEFAULT_CONFIG
    config.validate()

    store = provider or open_provider(config)
    metrics_collector = MetricsCollector()
    started_at = time.time()

    def on_write_complete(table: str) -> None:
        metrics_collector.record_flush(table)
        logger_structured.log_flush(table)

    def on_write_failed(table: str, error: BaseException) -> None:
        metrics_collector.record_flush(table, error)
        logger_structured.log_flush(table, error)

    if isinstance(store, FastStorageProvider):
        store.add_listener("write_complete", on_write_complete)
        store.add_listener("write_failed", on_write_failed)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """FastAPI lifespan context manager for startup/shutdown."""
        logger.info("TableDB Server Starting")
        logger_structured.log_startup(config.to_dict())

        await store.connect()
        logger.info(f"TableDB ready on HTTP:{config.http_port}")

        yield

        logger.info("TableDB Server Shutting Down")
        await store.close()
        logger_structured.log_shutdown("shutdown", store.info())

    app = FastAPI(
        title="TableDB Server",
        description="File-backed JSON table store with a write-batching cache",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.config = config
    app.state.metrics = metrics_collector

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(TableDBError)
    async def tabledb_exception_handler(request: Request, exc: TableDBError):
        """Handle store exceptions."""
        logger.warning(f"TableDBError on {request.url.path}: {exc.code} - {exc.message}")
        return JSONResponse(status_code=_status_for(exc), content={"error": exc.to_dict()})

    def timed(command: str, table: str, start: float, details: Optional[Dict[str, Any]] = None):
        latency_ms = (time.monotonic() - start) * 1000
        if config.metrics_enabled:
            metrics_collector.record_command(command, latency_ms)
        logger_structured.log_command(command, table, "success", latency_ms, details)

    def failed(command: str, table: str, start: float, error: Exception):
        latency_ms = (time.monotonic() - start) * 1000
        if config.metrics_enabled:
            metrics_collector.record_command(command, latency_ms, error=True)
        logger_structured.log_command(command, table, "error", latency_ms, {"error": str(error)})

    # ------------------------------------------------------------------
    # Health & Info
    # ------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Health check endpoint."""
        info = store.info()
        return HealthResponse(
            status="healthy" if info.get("connected") else "starting",
            version=__version__,
            backend=info.get("backend", "unknown"),
            uptime_seconds=time.time() - started_at,
            cached_tables=info.get("cache", {}).get("cached_tables", 0),
        )

    @app.get("/api/info")
    async def info():
        """Get comprehensive store statistics."""
        return JSONResponse(json.loads(json.dumps(store.info(), default=str)))

    @app.get("/api/metrics")
    async def metrics():
        """Get Prometheus format metrics."""
        return PlainTextResponse(metrics_collector.export_prometheus(store))

    @app.get("/api/metrics/json")
    async def metrics_json():
        """Get metrics as JSON."""
        return JSONResponse(json.loads(metrics_collector.export_json(store)))

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    @app.get("/api/tables/{table}", response_model=TableResponse)
    async def get_table(table: str):
        """Read a whole table ([] if it does not exist)."""
        start = time.monotonic()
        try:
            records = await store.get(table)
        except TableDBError as e:
            failed("GET", table, start, e)
            raise

        timed("GET", table, start, {"count": len(records)})
        return TableResponse(table=table, count=len(records), records=records)

    @app.put("/api/tables/{table}", response_model=PutResponse)
    async def put_table(table: str, records: List[Dict[str, Any]]):
        """Replace a whole table. Returns before the disk write."""
        start = time.monotonic()
        try:
            await store.put(table, records)
        except TableDBError as e:
            failed("PUT", table, start, e)
            raise

        timed("PUT", table, start, {"count": len(records)})
        return PutResponse(
            status="ok",
            table=table,
            count=len(records),
            version=store.info().get("version", 0),
        )

    @app.post("/api/tables/{table}/indexes/{field}", response_model=IndexResponse)
    async def build_index(table: str, field: str):
        """Build (or rebuild) the range index of a table on one field."""
        if not isinstance(store, FastStorageProvider):
            return JSONResponse(
                status_code=400,
                content={"error": {"code": "UNSUPPORTED", "message": "Indexes need the fast backend"}},
            )

        start = time.monotonic()
        try:
            indexed = await store.create_index(table, field)
        except TableDBError as e:
            failed("INDEX", table, start, e)
            raise

        timed("INDEX", table, start, {"field": field, "indexed": indexed})
        return IndexResponse(status="ok", table=table, field=field, indexed=indexed)

    @app.delete("/api/tables/{table}/indexes/{field}")
    async def drop_index(table: str, field: str):
        """Delete a range index; queries on the field scan the table."""
        if not isinstance(store, FastStorageProvider):
            return JSONResponse(
                status_code=400,
                content={"error": {"code": "UNSUPPORTED", "message": "Indexes need the fast backend"}},
            )

        await store.drop_index(table, field)
        return {"status": "ok", "table": table, "field": field}

    @app.get("/api/tables/{table}/range", response_model=TableResponse)
    async def range_query(
        table: str,
        field: str = Query(..., description="Field to range over"),
        min: Optional[str] = Query(None, description="Inclusive lower bound (JSON scalar)"),
        max: Optional[str] = Query(None, description="Inclusive upper bound (JSON scalar)"),
    ):
        """Records whose field lies within [min, max], ordered by field."""
        low, high = parse_bound(min), parse_bound(max)
        start = time.monotonic()

        try:
            if isinstance(store, FastStorageProvider):
                records = await store.query_range(table, field, low, high)
            else:
                try:
                    records = await store.query(
                        table,
                        lambda r: r.get(field) is not None
                        and (low is None or r[field] >= low)
                        and (high is None or r[field] <= high),
                    )
                    records.sort(key=lambda r: r[field])
                except TypeError as e:
                    raise InvalidRangeError(table, field, str(e)) from e
        except TableDBError as e:
            failed("RANGE", table, start, e)
            raise

        timed("RANGE", table, start, {"field": field, "count": len(records)})
        return TableResponse(table=table, count=len(records), records=records)

    @app.post("/api/flush", response_model=FlushResponse)
    async def flush():
        """Persist queued writes now."""
        if not isinstance(store, FastStorageProvider):
            return FlushResponse(status="ok", tables={})

        results = await store.flush()
        tables = {table: (str(error) if error else None) for table, error in results.items()}
        status = "ok" if all(error is None for error in results.values()) else "partial"
        return FlushResponse(status=status, tables=tables)

    @app.get("/")
    async def root():
        """Root endpoint with server info."""
        return {
            "name": "TableDB",
            "version": __version__,
            "status": "running",
            "documentation": "/docs",
            "config": config.to_dict(),
        }

    return app


app = create_app()
