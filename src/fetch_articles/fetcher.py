"""Fetch raw article HTML over HTTP with timeout, retry and backoff."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable
from urllib.parse import urlparse

import requests
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from common.datetime import utc_now
from common.errors import ErrorKind, FetchError
from fetch_articles.models import HttpResponse, RawDocument

logger = logging.getLogger(__name__)

USER_AGENT = "newsreader/1.0 (+article fetcher)"

# Statuses worth retrying besides 5xx: request timeout and rate limiting
RETRYABLE_STATUSES = {408, 429}


class BodyTooLarge(Exception):
    """Raised by the HTTP client when a response exceeds the byte limit."""


class DownloadTimedOut(Exception):
    """Raised by the HTTP client when a body is still streaming at the deadline."""


class FetchDeadlineExceeded(FetchError):
    """The whole fetch, retries included, ran past its deadline. Never retried."""

    def __init__(self, message: str) -> None:
        super().__init__(message, ErrorKind.TRANSIENT_EXTERNAL)


class HttpClient:
    """Thin blocking HTTP client with one requests.Session per thread."""

    def __init__(self, user_agent: str = USER_AGENT, max_bytes: int | None = None) -> None:
        self.user_agent = user_agent
        self.max_bytes = max_bytes
        self._local = threading.local()

    @property
    def session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = self.user_agent
            self._local.session = session
        return session

    def get(self, url: str, timeout: float, deadline_at: float | None = None) -> HttpResponse:
        """GET `url`. `deadline_at` is a time.monotonic() value checked per body chunk."""
        with self.session.get(url, timeout=timeout, stream=True) as response:
            body = self._read_body(response, deadline_at)
            return HttpResponse(
                status=response.status_code,
                body=body,
                final_url=response.url or url,
                encoding=response.encoding,
            )

    def _read_body(self, response: requests.Response, deadline_at: float | None = None) -> bytes:
        if self.max_bytes is None and deadline_at is None:
            return response.content
        chunks = []
        size = 0
        for chunk in response.iter_content(chunk_size=64 * 1024):
            if deadline_at is not None and time.monotonic() >= deadline_at:
                raise DownloadTimedOut(f"body still streaming after {size} bytes")
            size += len(chunk)
            if self.max_bytes is not None and size > self.max_bytes:
                raise BodyTooLarge(f"response body exceeds {self.max_bytes} bytes")
            chunks.append(chunk)
        return b"".join(chunks)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, FetchError) and exc.retryable and not isinstance(exc, FetchDeadlineExceeded)


def validate_url(url: str) -> None:
    """Raise a terminal FetchError for URLs that can never be fetched."""
    parsed = urlparse(url or "")
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        raise FetchError(f"malformed URL: {url!r}", ErrorKind.TERMINAL_CONTENT)


def classify_status(status: int) -> ErrorKind | None:
    """Map an HTTP status to an error kind, or None for success."""
    if 200 <= status < 300:
        return None
    if status >= 500 or status in RETRYABLE_STATUSES:
        return ErrorKind.TRANSIENT_EXTERNAL
    return ErrorKind.TERMINAL_CONTENT


class Fetcher:
    """Fetches one URL into a RawDocument.

    Transient failures (connection errors, timeouts, 5xx, 408, 429) are
    retried with exponential backoff until `max_attempts` attempts have been
    made or `deadline` seconds have passed. The deadline covers the whole
    fetch, body streaming included, so a response that arrives late fails
    too. Client errors and malformed URLs fail immediately.
    """

    def __init__(
        self,
        client: HttpClient | None = None,
        timeout: float = 10,
        max_attempts: int = 3,
        backoff_base: float = 0.5,
        backoff_max: float = 8.0,
        deadline: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client or HttpClient()
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.deadline = deadline
        self._sleep = sleep

    def fetch(self, url: str) -> RawDocument:
        validate_url(url)
        deadline_at = time.monotonic() + self.deadline if self.deadline else None

        stop = stop_after_attempt(self.max_attempts)
        if self.deadline:
            stop = stop | stop_after_delay(self.deadline)
        retrying = Retrying(
            stop=stop,
            wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
            retry=retry_if_exception(_is_retryable),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            return retrying(self._fetch_once, url, deadline_at)
        except FetchDeadlineExceeded:
            raise
        except FetchError as exc:
            if not exc.retryable:
                raise
            attempts = retrying.statistics.get("attempt_number", self.max_attempts)
            elapsed = retrying.statistics.get("delay_since_first_attempt", 0)
            if self.deadline and attempts < self.max_attempts and elapsed >= self.deadline:
                reason = f"fetch deadline of {self.deadline:g}s exceeded after {attempts} attempts"
            else:
                reason = f"gave up after {attempts} attempts"
            raise FetchError(f"{exc.message} ({reason})", ErrorKind.TRANSIENT_EXTERNAL) from exc

    def _fetch_once(self, url: str, deadline_at: float | None = None) -> RawDocument:
        timeout = self.timeout
        if deadline_at is not None:
            remaining = deadline_at - time.monotonic()
            if remaining <= 0:
                raise self._deadline_error(url)
            timeout = min(timeout, remaining)

        try:
            response = self.client.get(url, timeout=timeout, deadline_at=deadline_at)
        except (requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema,
                requests.exceptions.InvalidURL) as e:
            raise FetchError(f"malformed URL {url!r}: {e}", ErrorKind.TERMINAL_CONTENT) from e
        except requests.exceptions.TooManyRedirects as e:
            raise FetchError(f"too many redirects for {url}", ErrorKind.TERMINAL_CONTENT) from e
        except BodyTooLarge as e:
            raise FetchError(f"{url}: {e}", ErrorKind.TERMINAL_CONTENT) from e
        except DownloadTimedOut as e:
            raise self._deadline_error(url, str(e)) from e
        except requests.exceptions.Timeout as e:
            raise FetchError(f"timeout fetching {url}", ErrorKind.TRANSIENT_EXTERNAL) from e
        except requests.exceptions.RequestException as e:
            raise FetchError(f"request failed for {url}: {e}", ErrorKind.TRANSIENT_EXTERNAL) from e

        # A response that lands after the deadline still misses it
        if deadline_at is not None and time.monotonic() > deadline_at:
            raise self._deadline_error(url)

        kind = classify_status(response.status)
        if kind is not None:
            raise FetchError(f"HTTP {response.status} for {url}", kind)

        return RawDocument(
            url=url,
            fetched_at=utc_now(),
            http_status=response.status,
            body_bytes=response.body,
            final_url=response.final_url,
            encoding=response.encoding,
        )

    def _deadline_error(self, url: str, detail: str | None = None) -> FetchDeadlineExceeded:
        limit = f" of {self.deadline:g}s" if self.deadline else ""
        message = f"fetch deadline{limit} exceeded for {url}"
        if detail:
            message = f"{message}: {detail}"
        return FetchDeadlineExceeded(message)
