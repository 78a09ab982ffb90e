"""Single timed JSON GET over a direct or alternate (proxied) route, with failure classification."""

from __future__ import annotations

import asyncio
import json
import time
from email.utils import parsedate_to_datetime
from typing import Any
from urllib.parse import urlparse, urlunparse

import httpx
import structlog

log = structlog.get_logger(__name__)

BODY_PREVIEW_BYTES = 300
RETRYABLE_STATUSES = frozenset({408, 409, 429, 500, 502, 503, 504})
BLOCKED_STATUSES = frozenset({403, 407, 451})


class FetchError(Exception):
    """Base for every failure of one fetch."""


class TransportFailure(FetchError):
    """Network-level failure: DNS, connect, reset, protocol."""

    def __init__(self, kind: str, url: str, detail: str = "") -> None:
        super().__init__(f"{kind} fetching {url}: {detail}" if detail else f"{kind} fetching {url}")
        self.kind = kind
        self.url = url


class FetchTimeout(TransportFailure):
    def __init__(self, url: str, timeout: float) -> None:
        super().__init__("timeout", url, f"no response within {timeout}s")
        self.timeout = timeout


class UpstreamHttpError(FetchError):
    """Non-2xx response."""

    def __init__(self, status: int, url: str, body_preview: str = "", retry_after_ms: int | None = None) -> None:
        super().__init__(f"HTTP {status} from {url}")
        self.status = status
        self.url = url
        self.body_preview = body_preview
        self.retry_after_ms = retry_after_ms


class PayloadDecodeError(FetchError):
    """2xx response whose body is not JSON."""

    def __init__(self, url: str, body_preview: str = "") -> None:
        super().__init__(f"Expected JSON from {url}, got: {body_preview}")
        self.url = url
        self.body_preview = body_preview


def is_retryable(error: BaseException) -> bool:
    """Retry on transient statuses and any transport failure. Decode errors are final."""
    if isinstance(error, UpstreamHttpError):
        return error.status in RETRYABLE_STATUSES
    return isinstance(error, TransportFailure)


def is_fallback_worthy(error: BaseException) -> bool:
    """True when the direct route looks blocked or unreachable, not merely rate-limited."""
    if isinstance(error, UpstreamHttpError):
        return error.status in BLOCKED_STATUSES
    return isinstance(error, TransportFailure)


def parse_retry_after_ms(value: str | None, now: float | None = None) -> int | None:
    """Retry-After as delta-seconds or HTTP-date -> milliseconds. None if absent/unparsable."""
    if not value:
        return None
    raw = value.strip()
    if not raw:
        return None
    if raw.isascii() and raw.isdigit():
        return int(raw) * 1000
    try:
        when = parsedate_to_datetime(raw)
    except (TypeError, ValueError, IndexError):
        return None
    if when is None:
        return None
    current = time.time() if now is None else now
    delta_ms = int((when.timestamp() - current) * 1000)
    return max(delta_ms, 0)


def mask_proxy(proxy_url: str) -> str:
    """Hide credentials in a proxy URL before it is logged."""
    try:
        parsed = urlparse(proxy_url)
    except ValueError:
        return "[invalid proxy url]"
    if not parsed.scheme or not parsed.hostname:
        return "[invalid proxy url]"
    if parsed.username or parsed.password:
        netloc = f"***:***@{parsed.hostname}"
        if parsed.port:
            netloc += f":{parsed.port}"
        parsed = parsed._replace(netloc=netloc)
    return urlunparse(parsed)


def _preview(text: str) -> str:
    return text.encode("utf-8", errors="replace")[:BODY_PREVIEW_BYTES].decode("utf-8", errors="ignore")


class FetchClient:
    """Owns the direct and optional alternate httpx clients.

    The alternate client is only used when a caller asks for it; with no alternate
    configured such requests go over the direct route.
    """

    def __init__(self, direct: httpx.AsyncClient, alternate: httpx.AsyncClient | None = None) -> None:
        self._direct = direct
        self._alternate = alternate

    @classmethod
    def create(cls, proxy_url: str = "", headers: dict[str, str] | None = None) -> FetchClient:
        default_headers = {"accept": "application/json"}
        default_headers.update(headers or {})
        direct = httpx.AsyncClient(headers=default_headers, follow_redirects=True)
        alternate = None
        if proxy_url:
            alternate = httpx.AsyncClient(headers=default_headers, proxy=proxy_url, follow_redirects=True)
            log.info("alternate_route_configured", proxy=mask_proxy(proxy_url))
        return cls(direct, alternate)

    @property
    def has_alternate(self) -> bool:
        return self._alternate is not None

    async def fetch(self, url: str, timeout: float, use_alternate: bool = False) -> Any:
        """GET url and return decoded JSON, or raise a FetchError subclass."""
        client = self._alternate if use_alternate and self._alternate is not None else self._direct
        try:
            resp = await asyncio.wait_for(client.get(url, timeout=timeout), timeout=timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            raise FetchTimeout(url, timeout) from None
        except httpx.DecodingError:
            raise PayloadDecodeError(url) from None
        except httpx.RequestError as e:
            raise TransportFailure(type(e).__name__, url, str(e)) from e

        if not resp.is_success:
            raise UpstreamHttpError(
                resp.status_code,
                url,
                _preview(resp.text),
                parse_retry_after_ms(resp.headers.get("retry-after")),
            )

        content_type = resp.headers.get("content-type", "")
        text = resp.text
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            if "application/json" in content_type:
                log.debug("json_content_type_decode_failed", url=url)
            raise PayloadDecodeError(url, _preview(text)) from None

    async def aclose(self) -> None:
        await self._direct.aclose()
        if self._alternate is not None:
            await self._alternate.aclose()
