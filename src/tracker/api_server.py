"""Tracker REST API server, served over a unix socket."""

import json
import logging
import os
import stat
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .client import TrackerClient
from .exceptions import AlreadyWatchedError, TrackerError, ValidationError
from .service import TrackerService

logger = logging.getLogger(__name__)

MAX_TIME = 2**31 - 1


# ---------------------------------------------------------------------------
# Request validation
# ---------------------------------------------------------------------------

async def _json_object(request: Request) -> Dict[str, Any]:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ValidationError(f"invalid JSON body: {e}") from e
    if not isinstance(payload, dict):
        raise ValidationError("request body must be a JSON object")
    return payload


def _watch_request(payload: Dict[str, Any]) -> Tuple[str, str]:
    dir = payload.get("dir")
    if not isinstance(dir, str) or not dir:
        raise ValidationError("missing dir")
    if "\0" in dir:
        raise ValidationError("dir must not contain NUL bytes")
    if not os.path.isabs(dir):
        raise ValidationError(f"dir must be an absolute path: {dir}")
    dir = os.path.normpath(dir)

    label = payload.get("label")
    if label is None or label == "":
        label = os.path.basename(dir) or dir
    if not isinstance(label, str):
        raise ValidationError("label must be a string")
    if "\0" in label:
        raise ValidationError("label must not contain NUL bytes")
    return dir, label


def _time_param(request: Request, name: str, default: int) -> int:
    value = request.query_params.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as e:
        raise ValidationError(f"{name} must be an integer: {value}") from e


def _error(e: Exception) -> JSONResponse:
    if isinstance(e, ValidationError):
        return JSONResponse({"error": str(e)}, status_code=400)
    if isinstance(e, AlreadyWatchedError):
        return JSONResponse({"error": str(e)}, status_code=409)
    logger.error(f"Request failed: {e}")
    return JSONResponse({"error": str(e)}, status_code=500)


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(service: TrackerService) -> FastAPI:
    app = FastAPI(title="Time Tracker API", docs_url=None, redoc_url=None)
    app.state.service = service

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        logger.info(f"{request.method} {request.url.path} -> {response.status_code}")
        return response

    @app.get("/status")
    async def status():
        return {"uptime": service.uptime()}

    @app.post("/watch")
    async def start_watch(request: Request):
        try:
            dir, label = _watch_request(await _json_object(request))
            service.start_watch(dir, label)
        except TrackerError as e:
            return _error(e)
        return {"success": True}

    @app.get("/watches")
    async def get_watches():
        try:
            watches = service.get_watches()
        except TrackerError as e:
            return _error(e)
        return {"watches": [w.to_dict() for w in watches]}

    @app.post("/tick")
    async def record_tick(request: Request):
        try:
            payload = await _json_object(request)
            label = payload.get("label")
            if not isinstance(label, str) or not label:
                raise ValidationError("missing label")
            if "\0" in label:
                raise ValidationError("label must not contain NUL bytes")
            service.record_tick(label)
        except TrackerError as e:
            return _error(e)
        return {"success": True}

    @app.get("/intervals")
    async def get_intervals(request: Request):
        try:
            start = _time_param(request, "start", 0)
            end = _time_param(request, "end", MAX_TIME)
            report = service.get_intervals(start, end)
        except TrackerError as e:
            return _error(e)
        return report.to_dict()

    @app.post("/clear")
    async def clear(request: Request):
        try:
            payload = await _json_object(request)
            if payload.get("confirm") != "yes":
                raise ValidationError('clearing requires {"confirm": "yes"}')
            service.clear()
        except TrackerError as e:
            return _error(e)
        return {"success": True}

    return app


# ---------------------------------------------------------------------------
# Socket handling
# ---------------------------------------------------------------------------

def prepare_socket(socket_path: Path) -> None:
    """
    Make `socket_path` available for a new server.

    Raises:
        TrackerError: If the path is not a socket, or another server is
            already answering on it
    """
    socket_path = Path(socket_path)
    try:
        info = os.stat(socket_path)
    except FileNotFoundError:
        return
    if not stat.S_ISSOCK(info.st_mode):
        raise TrackerError(f"{socket_path} exists and is not a socket")

    client = TrackerClient(socket_path, timeout=2.0)
    try:
        client.status()
    except httpx.TransportError:
        logger.info(f"Removing stale socket {socket_path}")
        os.remove(socket_path)
        return
    finally:
        client.close()
    raise TrackerError(f"a tracker daemon is already running on {socket_path}")


# ---------------------------------------------------------------------------
# Service wrapper
# ---------------------------------------------------------------------------

class TrackerAPIService:
    """Runs the FastAPI app via uvicorn on a unix socket."""

    def __init__(self, socket_path: Path, service: TrackerService):
        self.socket_path = Path(socket_path)
        self.service = service
        self._thread: Optional[threading.Thread] = None
        self._server: Any = None

    def _build_server(self):
        import uvicorn

        prepare_socket(self.socket_path)
        config = uvicorn.Config(
            create_app(self.service),
            uds=str(self.socket_path),
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        return self._server

    def serve(self) -> None:
        """Serve in the calling thread until stop() is called."""
        logger.info(f"Listening on {self.socket_path}")
        self._build_server().run()

    def start(self) -> None:
        """Serve in a background thread."""
        server = self._build_server()
        self._thread = threading.Thread(target=server.run, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._server:
            self._server.should_exit = True
            self._server = None
