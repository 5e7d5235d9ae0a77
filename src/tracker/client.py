"""HTTP client for a tracker daemon listening on a unix socket."""

from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from .exceptions import TrackerError
from .models import IntervalReport, WatchInfo


class HTTPError(TrackerError):
    """The daemon answered with a non-200 status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class TrackerClient:
    """
    Thin client for the tracker API.

    Example:
        with TrackerClient(config.socket_path) as client:
            client.start_watch("/home/me/project")
    """

    def __init__(
        self,
        socket_path: Path,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.socket_path = Path(socket_path)
        self._client = httpx.Client(
            transport=transport or httpx.HTTPTransport(uds=str(self.socket_path)),
            base_url="http://tracker",
            timeout=timeout,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        response = self._client.request(method, path, **kwargs)
        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.status_code != 200:
            message = data.get("error") if isinstance(data, dict) else None
            raise HTTPError(response.status_code, message or response.text)
        return data

    def status(self) -> float:
        """Return the daemon's uptime in seconds."""
        return float(self._request("GET", "/status")["uptime"])

    def start_watch(self, dir: str, label: Optional[str] = None) -> None:
        body = {"dir": dir}
        if label:
            body["label"] = label
        self._request("POST", "/watch", json=body)

    def get_watches(self) -> List[WatchInfo]:
        data = self._request("GET", "/watches")
        return [WatchInfo.from_dict(w) for w in data.get("watches", [])]

    def record_tick(self, label: str) -> None:
        self._request("POST", "/tick", json={"label": label})

    def get_intervals(self, start: Optional[int] = None, end: Optional[int] = None) -> IntervalReport:
        params = {}
        if start is not None:
            params["start"] = start
        if end is not None:
            params["end"] = end
        return IntervalReport.from_dict(self._request("GET", "/intervals", params=params))

    def clear(self) -> None:
        self._request("POST", "/clear", json={"confirm": "yes"})
