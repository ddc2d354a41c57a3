"""HTTP transport for the key directory with retry, backoff and error classification."""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, AsyncIterator

import httpx
from pydantic import ValidationError

from kbkeys.config import ClientConfig
from kbkeys.exceptions import DirectoryError, ErrorKind

from .models import LookupResponse

USER_AGENT = "kbkeys/0.1.0"
_BODY_LIMIT = 200

logger = logging.getLogger(__name__)


class Transport:
    """Issues directory GET requests, retrying temporary failures.

    The pooled ``httpx.AsyncClient`` exists only between ``__aenter__`` and
    ``__aexit__``; outside of that a short-lived client is opened per call.
    """

    def __init__(self, config: ClientConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._http_transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "Transport":
        if self._client is None:
            self._client = self._new_client()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(http2=True, transport=self._http_transport, timeout=httpx.Timeout(self._config.timeout),
            limits=httpx.Limits(max_connections=100, max_keepalive_connections=20))

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with self._new_client() as client:
            yield client

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json", "User-Agent": USER_AGENT}

    def _backoff(self, attempt: int) -> float:
        return self._config.retry_delay * (2 ** (attempt - 1))

    async def lookup(self, url: str, params: dict[str, str]) -> LookupResponse:
        """GET *url* and return the validated lookup body.

        Makes at most ``max_retries + 1`` attempts. Only retryable kinds are
        retried; a rate-limit error's ``retry_after`` replaces the backoff
        delay for the wait that follows it.
        """
        last_err: DirectoryError | None = None
        async with self._session() as client:
            for attempt in range(self._config.max_retries + 1):
                if attempt > 0:
                    delay = self._backoff(attempt)
                    if last_err is not None and last_err.is_rate_limit and last_err.retry_after:
                        delay = last_err.retry_after
                    logger.warning("Directory lookup attempt %d failed (%s), retrying in %.2fs",
                                   attempt, last_err.kind if last_err else "unknown", delay)
                    await asyncio.sleep(delay)
                try:
                    return await self._fetch(client, url, params)
                except DirectoryError as e:
                    last_err = e
                    if not e.retryable:
                        raise
        raise last_err

    async def _fetch(self, client: httpx.AsyncClient, url: str, params: dict[str, str]) -> LookupResponse:
        try:
            resp = await client.get(url, params=params, headers=self._headers())
        except httpx.RequestError as e:
            raise classify_request_error(e) from e
        if not resp.is_success:
            raise classify_status_error(resp)
        try:
            data = resp.json()
        except ValueError as e:
            raise DirectoryError(f"failed to parse API response: {e}", ErrorKind.INVALID_RESPONSE,
                                 status_code=resp.status_code) from e
        try:
            lookup = LookupResponse.model_validate(data)
        except ValidationError as e:
            raise DirectoryError(f"unexpected API response shape: {e.error_count()} validation error(s)",
                                 ErrorKind.INVALID_RESPONSE, status_code=resp.status_code) from e
        if lookup.status.code != 0:
            raise DirectoryError(f"API returned error: {lookup.status.name} (code: {lookup.status.code})",
                                 classify_api_status(lookup.status.code), status_code=resp.status_code)
        return lookup


def classify_request_error(err: httpx.RequestError) -> DirectoryError:
    """Classify a failure that happened before any response was received."""
    if isinstance(err, httpx.TimeoutException):
        return DirectoryError(f"network timeout while connecting to key directory: {err}", ErrorKind.TIMEOUT,
                              temporary=True)
    if isinstance(err, httpx.UnsupportedProtocol):
        return DirectoryError(f"failed to create request: {err}", ErrorKind.INVALID_INPUT)
    if isinstance(err, httpx.ConnectError):
        return DirectoryError(f"failed to connect to key directory: {err}", ErrorKind.NETWORK, temporary=True)
    if isinstance(err, httpx.NetworkError):
        return DirectoryError(f"network error while connecting to key directory: {err}", ErrorKind.NETWORK,
                              temporary=True)
    return DirectoryError(f"HTTP request failed: {err}", ErrorKind.NETWORK, temporary=True)


def classify_status_error(resp: httpx.Response) -> DirectoryError:
    """Classify a non-2xx response by its status code."""
    code = resp.status_code
    body = resp.text
    if len(body) > _BODY_LIMIT:
        body = body[:_BODY_LIMIT] + "..."
    if code == 429:
        retry_after = parse_retry_after(resp.headers.get("Retry-After"))
        return DirectoryError(f"rate limited by key directory (retry after {retry_after:g}s): {body}",
                              ErrorKind.RATE_LIMIT, status_code=code, temporary=True, retry_after=retry_after)
    if 400 <= code < 500:
        if code == 404:
            return DirectoryError(f"user not found or endpoint does not exist: {body}", ErrorKind.NOT_FOUND,
                                  status_code=code)
        if code == 400:
            message = f"invalid request to key directory: {body}"
        elif code in (401, 403):
            message = f"authentication or authorization failed: {body}"
        else:
            message = f"key directory rejected request: {body}"
        return DirectoryError(message, ErrorKind.INVALID_INPUT, status_code=code)
    if code >= 500:
        return DirectoryError(f"key directory server error (status {code}): {body}", ErrorKind.SERVER_ERROR,
                              status_code=code, temporary=True)
    return DirectoryError(f"unexpected HTTP status {code}: {body}", ErrorKind.UNKNOWN, status_code=code)


def parse_retry_after(header: str | None, now: datetime | None = None) -> float:
    """Parse a Retry-After header into seconds.

    Accepts delay-seconds or an HTTP-date. Dates in the past, negative
    values and unparseable headers yield 0.
    """
    if not header:
        return 0.0
    header = header.strip()
    try:
        return float(max(int(header), 0))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(header)
    except (TypeError, ValueError):
        return 0.0
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max((when - now).total_seconds(), 0.0)


def classify_api_status(code: int) -> ErrorKind:
    """Map a status code embedded in the response body to an ErrorKind."""
    match code:
        case 205:
            return ErrorKind.NOT_FOUND
        case 207:
            return ErrorKind.INVALID_INPUT
        case _:
            return ErrorKind.UNKNOWN
