# blebridge/sinks/http.py
from __future__ import annotations

import logging
from typing import Optional

import httpx

from blebridge.core.errors import SinkRejectedError, SinkUnavailableError
from blebridge.model.reading import Reading

# Statuses worth retrying; every other >= 400 is a permanent rejection.
RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


class HttpSink:
    """
    POSTs each reading to the collection endpoint as a single-element JSON array.

    Endpoint: {base_url}/api/{resource}
    """

    def __init__(
        self,
        base_url: str,
        *,
        resource: str = "govee",
        timeout_s: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._path = f"/api/{resource.strip('/')}"
        self._log = logger or logging.getLogger(__name__)
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout_s,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    @property
    def path(self) -> str:
        return self._path

    def deliver(self, reading: Reading) -> None:
        try:
            response = self._client.post(self._path, json=[reading.as_json()])
        except httpx.TransportError as e:
            raise SinkUnavailableError(
                "Collector unreachable.",
                hint=str(e) or type(e).__name__,
                details={"url": str(self._client.base_url.join(self._path))},
            ) from e
        except httpx.HTTPError as e:
            raise SinkRejectedError(
                "Request to collector failed.",
                hint=str(e) or type(e).__name__,
                details={"url": str(self._client.base_url.join(self._path))},
            ) from e

        status = response.status_code
        if status < 400:
            self._log.debug("HTTP_DELIVERED address=%s status=%d", reading.address, status)
            return

        details = {"status": status, "url": str(response.request.url)}
        if status in RETRYABLE_STATUS or status >= 500:
            raise SinkUnavailableError(f"Collector answered HTTP {status}.", details=details)
        raise SinkRejectedError(
            f"Collector rejected reading with HTTP {status}.",
            hint=response.text[:200] or None,
            details=details,
        )

    def close(self) -> None:
        self._client.close()
