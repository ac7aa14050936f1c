"""
HTTP gateway for a Firebase-style JSON store.

Endpoints (relative to the configured base URL):
    PUT /projects/{project}/changes/{key}.json      batch envelope
    PUT /projects/{project}/datamodel.json          snapshot envelope
    GET /projects/{project}/changes.json?orderBy="$key"&limitToLast=N
    GET /projects/.json                             connection probe

Invariants:
    - No request is sent unless the base URL passes validation
    - Transport failures never raise out of the public methods
    - The httpx client is owned by the gateway unless one was injected

How to change safely:
    - Keep failure classification in _classify() so every operation reports
      the same hints
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from ..config import RemoteConfig, validate_remote_url
from ..errors import DecodeError, FailureHint, TransportError
from ..serialize.records import Snapshot
from .base import Batch, KeyClock, PullResult, PullStatus, PushResult, log_failure
from .envelope import parse_changes

logger = logging.getLogger(__name__)

_STATUS_HINTS: Dict[int, FailureHint] = {
    401: FailureHint.UNAUTHORIZED,
    403: FailureHint.FORBIDDEN,
    404: FailureHint.NOT_FOUND,
}


def _classify(error: httpx.HTTPError) -> FailureHint:
    if isinstance(error, httpx.TimeoutException):
        return FailureHint.TIMEOUT
    if isinstance(error, (httpx.ConnectError, httpx.UnsupportedProtocol)):
        return FailureHint.HTTP_DISABLED
    return FailureHint.UNKNOWN


class HttpRemoteGateway:
    """Remote gateway over httpx.

    Attributes:
        config: Remote store configuration

    Example:
        >>> gateway = HttpRemoteGateway(RemoteConfig(base_url="http://localhost:9000"))
        >>> result = await gateway.pull_recent(10)
        >>> result.status
        <PullStatus.EMPTY: 'empty'>
    """

    def __init__(
        self,
        config: RemoteConfig,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)
        self._keys = KeyClock(clock)
        self._pushes = 0
        self._failures = 0

    @property
    def base_url(self) -> str:
        return self.config.base_url.rstrip("/")

    def _project_url(self, suffix: str) -> str:
        return f"{self.base_url}/projects/{self.config.project_id}/{suffix}"

    def _check_configured(self) -> Optional[str]:
        valid, message = validate_remote_url(self.config.base_url)
        return None if valid else message

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, raising TransportError on any failure."""
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(
                f"{method} {url} failed: {e.__class__.__name__}: {e}",
                hint=_classify(e),
                url=url,
            )

        if response.status_code >= 400:
            raise TransportError(
                f"HTTP {response.status_code}: {response.text[:100]}",
                status=response.status_code,
                hint=_STATUS_HINTS.get(response.status_code, FailureHint.UNKNOWN),
                url=url,
            )
        return response

    async def _put(
        self,
        operation: str,
        url: str,
        body: Dict[str, Any],
        key: Optional[str] = None,
    ) -> PushResult:
        problem = self._check_configured()
        if problem is not None:
            logger.warning(f"Cannot {operation} - URL not configured: {problem}")
            return PushResult(ok=False, error=problem)

        try:
            response = await self._request("PUT", url, json=body)
        except TransportError as e:
            self._failures += 1
            log_failure(operation, e.hint, e.message, self.base_url)
            return PushResult.failure(e.hint, e.message, status=e.status)

        self._pushes += 1
        logger.debug(f"{operation} succeeded", extra={"key": key, "status": response.status_code})
        return PushResult(ok=True, key=key, status=response.status_code)

    async def push_batch(self, batch: Batch) -> PushResult:
        key = self._keys.next()
        url = self._project_url(f"changes/{key}.json")
        result = await self._put("push batch", url, batch.to_dict(), key=key)
        if result.ok:
            logger.info(
                f"Pushed {len(batch)} changes",
                extra={"key": key, "batch_id": batch.batch_id, "changes": len(batch)},
            )
        return result

    async def push_snapshot(self, snapshot: Snapshot) -> PushResult:
        url = self._project_url("datamodel.json")
        result = await self._put("push snapshot", url, snapshot.to_dict())
        if result.ok:
            logger.info(
                "DataModel updated",
                extra={"instances": snapshot.instance_count, "services": len(snapshot.services)},
            )
        return result

    async def pull_recent(self, limit: int) -> PullResult:
        problem = self._check_configured()
        if problem is not None:
            logger.debug(f"Cannot fetch changes - URL not configured: {problem}")
            return PullResult(status=PullStatus.DISABLED, error=problem)

        url = self._project_url("changes.json")
        try:
            response = await self._request(
                "GET",
                url,
                params={"orderBy": '"$key"', "limitToLast": str(limit)},
            )
        except TransportError as e:
            self._failures += 1
            log_failure("fetch changes", e.hint, e.message, self.base_url)
            return PullResult(status=PullStatus.FAILED, hint=e.hint, error=e.message)

        try:
            payload = json.loads(response.text) if response.text.strip() else None
            batches, skipped = parse_changes(payload)
        except (json.JSONDecodeError, DecodeError) as e:
            preview = response.text[:100]
            logger.warning(f"JSON decode failed. Response: {preview}", extra={"url": url})
            return PullResult(status=PullStatus.DECODE_ERROR, error=str(e))

        if not batches:
            logger.debug("No recent changes found (empty response)")
            return PullResult(status=PullStatus.EMPTY, skipped=skipped)
        return PullResult(status=PullStatus.OK, batches=batches, skipped=skipped)

    async def test_connection(self) -> PushResult:
        problem = self._check_configured()
        if problem is not None:
            return PushResult(ok=False, error=problem)

        url = f"{self.base_url}/projects/.json"
        try:
            response = await self._request("GET", url)
        except TransportError as e:
            log_failure("connection test", e.hint, e.message, self.base_url)
            return PushResult.failure(e.hint, e.message, status=e.status)

        logger.info(f"Connection test passed for: {self.base_url}")
        return PushResult(ok=True, status=response.status_code)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def stats(self) -> Dict[str, Any]:
        return {"pushes": self._pushes, "failures": self._failures}
