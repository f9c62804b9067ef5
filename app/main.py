"""FastAPI app for authoring and debugging declarative widgets."""

from __future__ import annotations

import os
import sys
import time
import logging
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value


_load_env_file(ROOT / "app" / ".env")

from app.widget_types import register_builtin_definitions, register_builtin_types
from definition_validate import validate_definition
from event_bus import EventBus, EventValidationError
from widget_catalog import DefinitionCatalog
from widget_registry import WidgetRegistry
from widget_transform import normalize_response
from widget_versioning import normalize_instance, version_info


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logging.getLogger("widgets").warning("config_invalid name=%s value=%s default=%s", name, raw, default)
        return default


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


APP_ENV = os.getenv("APP_ENV", os.getenv("ENV", "dev")).strip().lower() or "dev"
IS_DEV = APP_ENV == "dev"
EVENT_LOG_SIZE = _env_int("WIDGET_EVENT_LOG_SIZE", 100)
MAX_PUBLISH_DEPTH = _env_int("WIDGET_MAX_PUBLISH_DEPTH", 10)
SAFE_MODE = _env_flag("WIDGET_SAFE_MODE")
DEFAULT_POLL_SECONDS = _env_int("WIDGET_DEFAULT_POLL_SECONDS", 0)


app = FastAPI(title="Widget Runtime")
logger = logging.getLogger("widgets")
logging.basicConfig(level=logging.INFO)
_CORS_ORIGINS = {
    origin.strip().rstrip("/")
    for origin in os.getenv("WIDGET_CORS_ORIGINS", "").split(",")
    if origin.strip()
}

bus = EventBus(log_capacity=EVENT_LOG_SIZE, max_depth=MAX_PUBLISH_DEPTH, enabled=not SAFE_MODE)
catalog = DefinitionCatalog()
registry = WidgetRegistry()
register_builtin_types(registry)
register_builtin_definitions(catalog)


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    total_ms = (time.perf_counter() - start) * 1000
    logger.debug("request method=%s path=%s status=%s total_ms=%.1f", request.method, request.url.path, response.status_code, total_ms)
    if IS_DEV:
        response.headers["X-Req-MS"] = f"{total_ms:.1f}"
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted(_CORS_ORIGINS),
    allow_origin_regex=r"http://localhost:\d+|http://127\.0\.0\.1:\d+",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(code: str, message: str, path: str | None = None, detail: dict | None = None, status: int = 400) -> JSONResponse:
    body = {
        "ok": False,
        "errors": [{"code": code, "message": message, "path": path, "detail": detail}],
        "warnings": [],
    }
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _ok_response(payload: dict, warnings: list | None = None, status: int = 200) -> JSONResponse:
    body = {"ok": True, **payload, "errors": [], "warnings": warnings or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


def _result_response(result: dict, payload: dict, status: int = 400) -> JSONResponse:
    if result.get("ok"):
        return _ok_response(payload, warnings=result.get("warnings"))
    body = {"ok": False, **payload, "errors": result.get("errors") or [], "warnings": result.get("warnings") or []}
    return JSONResponse(jsonable_encoder(body), status_code=status)


async def _safe_json(request: Request) -> Any:
    try:
        return await request.json()
    except Exception:
        return None


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error method=%s path=%s", request.method, request.url.path)
    return _error_response("INTERNAL_ERROR", "Unexpected server error", detail={"error": str(exc)}, status=500)


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.post("/definitions/validate")
async def validate_definition_route(request: Request) -> JSONResponse:
    body = await _safe_json(request)
    result = validate_definition(body)
    return JSONResponse(jsonable_encoder({"ok": result["valid"], **result}), status_code=200)


@app.get("/definitions")
async def list_definitions() -> JSONResponse:
    return _ok_response({"definitions": catalog.list()})


@app.get("/definitions/{widget_id}")
async def get_definition(widget_id: str) -> JSONResponse:
    definition = catalog.get(widget_id)
    if definition is None:
        return _error_response("DEFINITION_NOT_FOUND", "definition not found", "widget_id", status=404)
    interval = (definition.get("dataSource") or {}).get("pollIntervalSeconds")
    if interval is None:
        interval = DEFAULT_POLL_SECONDS
    return _ok_response(
        {
            "widget_id": widget_id,
            "definition": definition,
            "definition_hash": catalog.get_hash(widget_id),
            "poll_interval_seconds": interval,
        }
    )


@app.post("/definitions/{widget_id}")
async def register_definition(widget_id: str, request: Request) -> JSONResponse:
    body = await _safe_json(request)
    result = catalog.register(widget_id, body)
    return _result_response(result, {"widget_id": widget_id, "definition_hash": result.get("definition_hash")})


@app.post("/definitions/{widget_id}/preview")
async def preview_definition(widget_id: str, request: Request) -> JSONResponse:
    definition = catalog.get(widget_id)
    if definition is None:
        return _error_response("DEFINITION_NOT_FOUND", "definition not found", "widget_id", status=404)
    body = await _safe_json(request)
    if not isinstance(body, dict) or "response" not in body:
        return _error_response("PREVIEW_INVALID", "response is required", "response")
    records = normalize_response(body["response"], definition)
    return _ok_response({"widget_id": widget_id, "records": records, "count": len(records)})


@app.get("/widget-types")
async def list_widget_types() -> JSONResponse:
    return _ok_response({"widget_types": registry.list()})


@app.post("/instances")
async def create_instance(request: Request) -> JSONResponse:
    body = await _safe_json(request)
    if not isinstance(body, dict):
        return _error_response("INSTANCE_INVALID", "body must be object", None)
    result = registry.create_instance(body.get("type"), body.get("config"), body.get("layout"), body.get("id"))
    return _result_response(result, {"instance": result.get("instance")})


@app.post("/instances/normalize")
async def normalize_instances_route(request: Request) -> JSONResponse:
    body = await _safe_json(request)
    instances = body.get("instances") if isinstance(body, dict) else None
    if not isinstance(instances, list):
        return _error_response("INSTANCES_INVALID", "instances must be list", "instances")
    results = []
    for idx, instance in enumerate(instances):
        if not isinstance(instance, dict):
            return _error_response("INSTANCE_INVALID", "instance must be object", f"instances[{idx}]")
        item = normalize_instance(registry, instance).as_dict()
        item["version_info"] = version_info(registry, item["instance"])
        results.append(item)
    return _ok_response({"results": results})


@app.post("/events/publish")
async def publish_event(request: Request) -> JSONResponse:
    body = await _safe_json(request)
    if not isinstance(body, dict):
        return _error_response("EVENT_INVALID", "body must be object", None)
    try:
        matched = bus.publish(body.get("name"), body.get("payload"), body.get("source"))
    except EventValidationError as exc:
        return _error_response(exc.code, exc.message, exc.path)
    return _ok_response({"matched": matched, "enabled": bus.is_enabled()})


@app.get("/events/log")
async def get_event_log(
    name: str | None = None,
    source: str | None = None,
    status: str | None = None,
    since: str | None = None,
    until: str | None = None,
) -> JSONResponse:
    events = bus.query_event_log(name=name, source=source, status=status, since=since, until=until)
    return _ok_response({"events": events, "count": len(events)})


@app.post("/events/log/clear")
async def clear_event_log() -> JSONResponse:
    bus.clear_event_log()
    return _ok_response({})


@app.post("/events/safe_mode")
async def set_safe_mode(request: Request) -> JSONResponse:
    body = await _safe_json(request)
    enabled = body.get("enabled") if isinstance(body, dict) else None
    if enabled is None:
        bus.toggle_safe_mode()
    elif isinstance(enabled, bool):
        bus.set_enabled(enabled)
    else:
        return _error_response("SAFE_MODE_INVALID", "enabled must be boolean", "enabled")
    return _ok_response({"enabled": bus.is_enabled(), "safe_mode": not bus.is_enabled()})
