"""Async HTTP client wrapper with retry support.

Wraps httpx with RequestPolicy enforcement:
- Configurable timeouts
- Retries with exponential backoff, for idempotent methods only
- Error mapping to the ConnectorError hierarchy

Tests inject an ``httpx.MockTransport`` instead of touching the network.
"""

import asyncio
import json as json_module
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional

import httpx

from .base import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ConnectionError,
    ConnectorError,
    OAuthTokenAuth,
    RateLimitError,
    RequestPolicy,
    ResourceNotFoundError,
    ServiceUnavailableError,
    TimeoutError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass
class HTTPResponse:
    """Simplified HTTP response wrapper."""

    status_code: int
    headers: Dict[str, str]
    body: bytes
    json_data: Optional[Any] = None
    elapsed_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        """Check if status code indicates success (2xx)."""
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        """Get JSON data (parsed body). Empty bodies decode to None."""
        if self.json_data is not None:
            return self.json_data
        if not self.body:
            return None
        self.json_data = json_module.loads(self.body)
        return self.json_data


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header given in seconds or as an HTTP date."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return max(0.0, (retry_at - datetime.now(timezone.utc)).total_seconds())


def extract_error_message(body: bytes) -> str:
    """Pull the platform's error message out of a response body.

    Handles ``{"error": "..."}``, ``{"error": {"message": "..."}}``,
    ``{"errors": [...]}`` and falls back to the raw text.
    """
    text = body.decode("utf-8", errors="replace").strip()
    try:
        payload = json_module.loads(text)
    except ValueError:
        return text

    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        errors = payload.get("errors")
        if isinstance(errors, list) and errors:
            return "; ".join(str(e) for e in errors)
        if payload.get("message"):
            return str(payload["message"])
    return text


def map_http_error(
    status_code: int,
    body: bytes,
    headers: Dict[str, str],
    connector_name: str = "http_client",
) -> ConnectorError:
    """Map HTTP status code to appropriate ConnectorError."""
    message = extract_error_message(body)

    if status_code == 401:
        return AuthenticationError(
            f"Authentication failed: {message}",
            connector_name=connector_name,
            status_code=status_code,
        )
    elif status_code == 403:
        return AuthorizationError(
            f"Permission denied: {message}",
            connector_name=connector_name,
            status_code=status_code,
        )
    elif status_code == 404:
        return ResourceNotFoundError(
            f"Resource not found: {message}",
            connector_name=connector_name,
        )
    elif status_code == 409:
        return ConflictError(
            f"Resource conflict: {message}",
            connector_name=connector_name,
            status_code=status_code,
        )
    elif status_code in (400, 422):
        return ValidationError(
            f"Validation failed: {message}",
            connector_name=connector_name,
            status_code=status_code,
        )
    elif status_code == 429:
        lowered = {k.lower(): v for k, v in headers.items()}
        return RateLimitError(
            f"Rate limit exceeded: {message}",
            connector_name=connector_name,
            retry_after=parse_retry_after(lowered.get("retry-after")),
        )
    elif status_code >= 500:
        return ServiceUnavailableError(
            f"Service error ({status_code}): {message}",
            connector_name=connector_name,
            status_code=status_code,
        )
    else:
        return ConnectorError(
            f"HTTP error {status_code}: {message}",
            connector_name=connector_name,
            status_code=status_code,
        )


class AsyncHTTPClient:
    """Async HTTP client with retry support."""

    def __init__(
        self,
        auth: Optional[OAuthTokenAuth] = None,
        policy: Optional[RequestPolicy] = None,
        base_url: str = "",
        connector_name: str = "http_client",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize async HTTP client.

        Args:
            auth: Authentication strategy for requests
            policy: Request policy (timeouts, retries)
            base_url: Base URL for all requests
            connector_name: Name stamped on raised ConnectorErrors
            transport: Optional httpx transport (tests use MockTransport)
        """
        self.auth = auth
        self.policy = policy or RequestPolicy()
        self.base_url = base_url.rstrip("/")
        self.connector_name = connector_name
        self._transport = transport

    def _build_headers(self, extra_headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Build request headers including auth and defaults."""
        headers = {"User-Agent": self.policy.user_agent}
        headers.update(self.policy.default_headers)

        if self.auth:
            headers.update(self.auth.get_headers())

        if extra_headers:
            headers.update(extra_headers)

        return headers

    def _get_url(self, path: str) -> str:
        """Build full URL from path."""
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _get_retry_delay(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Calculate retry delay with exponential backoff.

        A server-sent Retry-After is honoured up to ``total_timeout``.
        """
        if retry_after is not None:
            return min(retry_after, self.policy.total_timeout)
        return self.policy.retry_delay * (self.policy.retry_backoff ** attempt)

    async def _sleep_and_retry(
        self, method: str, attempt: int, retry_after: Optional[float] = None
    ) -> bool:
        """Sleep before retry if the method and attempts allow it."""
        if not self.policy.allows_retry(method) or attempt >= self.policy.max_retries:
            return False
        delay = self._get_retry_delay(attempt, retry_after)
        logger.debug(f"Retrying {method} in {delay:.2f}s (attempt {attempt + 1})")
        await asyncio.sleep(delay)
        return True

    async def _execute_request(
        self,
        method: str,
        url: str,
        request_headers: Dict[str, str],
        timeout: httpx.Timeout,
        json: Optional[Any],
        data: Optional[Any],
        params: Optional[Dict[str, Any]],
    ) -> HTTPResponse:
        """Execute a single HTTP request."""
        start_time = time.monotonic()
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            response = await client.request(
                method=method,
                url=url,
                json=json,
                content=data,
                params=params,
                headers=request_headers,
            )
        elapsed = time.monotonic() - start_time
        return HTTPResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.content,
            elapsed_seconds=elapsed,
        )

    async def request(  # noqa: C901
        self,
        method: str,
        path: str,
        *,
        json: Optional[Any] = None,
        data: Optional[Any] = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        raise_for_status: bool = True,
    ) -> HTTPResponse:
        """Make async HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, etc.)
            path: URL path (relative to base_url) or absolute URL
            json: JSON body to send
            data: Raw body to send
            params: Query parameters (None values are dropped)
            headers: Additional headers
            raise_for_status: Raise exception on non-2xx status

        Returns:
            HTTPResponse with status, headers, and body

        Raises:
            ConnectorError: On HTTP errors (if raise_for_status=True)
            TimeoutError: On request timeout
            ConnectionError: On connection failure
        """
        method = method.upper()
        url = self._get_url(path)
        request_headers = self._build_headers(headers)
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        timeout = httpx.Timeout(
            connect=self.policy.connect_timeout,
            read=self.policy.read_timeout,
            write=self.policy.read_timeout,
            pool=self.policy.total_timeout,
        )

        last_error: Optional[Exception] = None

        for attempt in range(self.policy.max_retries + 1):
            try:
                result = await self._execute_request(
                    method, url, request_headers, timeout, json, data, params
                )
            except httpx.TimeoutException:
                last_error = TimeoutError(
                    f"Request timed out after {self.policy.read_timeout}s",
                    connector_name=self.connector_name,
                    timeout_seconds=self.policy.read_timeout,
                )
                if await self._sleep_and_retry(method, attempt):
                    continue
                break
            except httpx.ConnectError as e:
                last_error = ConnectionError(
                    f"Failed to connect to {url}: {e}", connector_name=self.connector_name
                )
                if await self._sleep_and_retry(method, attempt):
                    continue
                break
            except httpx.HTTPError as e:
                last_error = ConnectorError(f"HTTP error: {e}", connector_name=self.connector_name)
                if await self._sleep_and_retry(method, attempt):
                    continue
                break

            if not result.ok and result.status_code in self.policy.retry_on_status:
                retry_after = None
                if result.status_code == 429:
                    lowered = {k.lower(): v for k, v in result.headers.items()}
                    retry_after = parse_retry_after(lowered.get("retry-after"))
                if await self._sleep_and_retry(method, attempt, retry_after):
                    continue

            if raise_for_status and not result.ok:
                raise map_http_error(
                    result.status_code, result.body, result.headers, self.connector_name
                )

            return result

        if last_error:
            raise last_error
        raise ConnectorError("Request failed after all retries", connector_name=self.connector_name)

    async def get(self, path: str, **kwargs) -> HTTPResponse:
        """Async HTTP GET request."""
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> HTTPResponse:
        """Async HTTP POST request."""
        return await self.request("POST", path, **kwargs)

    async def delete(self, path: str, **kwargs) -> HTTPResponse:
        """Async HTTP DELETE request."""
        return await self.request("DELETE", path, **kwargs)
