"""Minimal Elasticsearch REST client built on top of requests."""
from __future__ import annotations

from typing import Any, List
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from esmaint.common.errors import DeletionError, EnumerationError, StoreConnectionError


def normalise_url(host: str) -> str:
    """Return a base URL for ``host``, adding ``http://`` when no scheme is given."""

    host = host.strip().rstrip("/")
    if "://" not in host:
        host = f"http://{host}"
    return host


class IndexStoreClient:
    """Lists and deletes indices on a single cluster endpoint."""

    def __init__(
        self,
        host: str,
        max_retries: int = 10,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self._url = normalise_url(host)
        self._timeout = timeout
        self._session = session or requests.Session()
        if session is None:
            # Connection and read failures surface immediately; the sweep's
            # backoff envelope owns reconnecting. Only GET/HEAD answered with a
            # gateway error are retried here, with waits capped at 5s.
            adapter = HTTPAdapter(
                max_retries=Retry(
                    total=max_retries,
                    connect=0,
                    read=0,
                    other=0,
                    status=max_retries,
                    backoff_factor=0.5,
                    backoff_max=5.0,
                    allowed_methods=frozenset({"GET", "HEAD"}),
                    status_forcelist=(502, 503, 504),
                    raise_on_status=False,
                )
            )
            self._session.mount("http://", adapter)
            self._session.mount("https://", adapter)

    @property
    def url(self) -> str:
        return self._url

    def __enter__(self) -> "IndexStoreClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def connect(self) -> None:
        """Ping the cluster root, raising StoreConnectionError when unreachable."""

        try:
            response = self._session.get(f"{self._url}/", timeout=self._timeout)
        except requests.RequestException as exc:
            raise StoreConnectionError(f"Failed to reach cluster at {self._url}: {exc}") from exc
        if not response.ok:
            raise StoreConnectionError(
                f"Cluster at {self._url} responded with {response.status_code}: {response.text}"
            )

    def index_names(self) -> List[str]:
        """Return the names of every index in the cluster."""

        try:
            response = self._session.get(f"{self._url}/_aliases", timeout=self._timeout)
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise StoreConnectionError(f"Failed to reach cluster at {self._url}: {exc}") from exc
        except requests.RequestException as exc:
            raise EnumerationError(f"Failed to list indices: {exc}") from exc
        if not response.ok:
            raise EnumerationError(
                f"Failed to list indices: {response.status_code} {response.text}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise EnumerationError(f"Failed to list indices: invalid response body: {exc}") from exc
        if not isinstance(payload, dict):
            raise EnumerationError("Failed to list indices: expected a JSON object")
        return list(payload.keys())

    def delete_index(self, name: str) -> None:
        """Delete a single index by name."""

        try:
            response = self._session.delete(
                f"{self._url}/{quote(name, safe='')}", timeout=self._timeout
            )
        except requests.RequestException as exc:
            raise DeletionError(name, str(exc)) from exc
        if not response.ok:
            raise DeletionError(name, f"{response.status_code} {response.text}")

    def close(self) -> None:
        self._session.close()


__all__ = ["IndexStoreClient", "normalise_url"]
