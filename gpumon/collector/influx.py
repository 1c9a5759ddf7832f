# collector/influx.py
"""Minimal InfluxDB 1.x HTTP client: create the database, write lines."""
from __future__ import annotations

import logging
from typing import Optional

import requests

from gpumon.config import Settings
from gpumon.errors import SinkError, SinkTimeout

log = logging.getLogger(__name__)


class InfluxClient:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None) -> None:
        self.settings = settings
        self.session = session or requests.Session()

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            resp = self.session.request(method, url, timeout=self.settings.http_timeout, **kwargs)
        except requests.Timeout as exc:
            raise SinkTimeout(
                f"{method} {url} timed out after {self.settings.http_timeout}s", url=url
            ) from exc
        except requests.RequestException as exc:
            raise SinkError(f"{method} {url} failed: {exc}", url=url) from exc

        log.debug("%s %s -> %d %s", method, url, resp.status_code, resp.text)
        if not 200 <= resp.status_code < 300:
            raise SinkError(
                f"{method} {url} returned {resp.status_code}",
                url=url,
                status=resp.status_code,
                body=resp.text,
            )
        return resp

    def ensure_database(self) -> None:
        """CREATE DATABASE is a no-op on the server when it already exists."""
        self._request(
            "GET",
            self.settings.query_url,
            params={"q": f'CREATE DATABASE "{self.settings.database}"'},
        )

    def write(self, payload: str) -> None:
        self._request(
            "POST",
            self.settings.write_url,
            params={"db": self.settings.database},
            data=payload.encode("utf-8"),
            headers={"Content-Type": "text/plain; charset=utf-8"},
        )

    def close(self) -> None:
        self.session.close()
