"""HTTP fetching with a visible redirect bound and a single retry on 502."""

from __future__ import annotations

import threading
from typing import Any, Protocol
from urllib.parse import urljoin

import requests

from .errors import FetchError
from .retry import RetryNotice, RetryPolicy, SleepFn, retry_call
from .run_log import RunLogger, ensure_logger

MAX_REDIRECTS = 5
RETRYABLE_STATUS = 502
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)


class HttpSession(Protocol):
    def get(self, url: str, **kwargs: Any) -> Any: ...


class TransientStatusError(FetchError):
    """The upstream gateway answered with the retryable status."""


def _retry_reason(exc: BaseException) -> str | None:
    if isinstance(exc, TransientStatusError):
        return f"http_{exc.status_code}"
    return None


def _is_redirect(status: int) -> bool:
    return 300 <= status < 400


class Fetcher:
    """
    Blocking GET helper shared by both source parsers and the baseline lookup.

    fetch() never raises: any failure yields b"" and a log event.
    """

    def __init__(
        self,
        *,
        session: HttpSession | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout_seconds: float = 30.0,
        retry_delay_seconds: float = 1.0,
        max_redirects: int = MAX_REDIRECTS,
        logger: RunLogger | None = None,
        sleep_fn: SleepFn | None = None,
    ) -> None:
        self._session = session
        # One owned session per calling thread.
        self._local = threading.local()
        self._owned: list[requests.Session] = []
        self._owned_lock = threading.Lock()
        self._user_agent = user_agent
        self._timeout = float(timeout_seconds)
        self._max_redirects = int(max_redirects)
        self._retry = RetryPolicy(attempts=2, pause_seconds=float(retry_delay_seconds))
        self._log = ensure_logger(logger)
        self._sleep_fn = sleep_fn

    def close(self) -> None:
        """Close the sessions this fetcher created; an injected session is left alone."""
        with self._owned_lock:
            owned, self._owned = self._owned, []
            self._local = threading.local()
        for session in owned:
            session.close()

    def __enter__(self) -> "Fetcher":
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def _http(self) -> HttpSession:
        if self._session is not None:
            return self._session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            self._local.session = session
            with self._owned_lock:
                self._owned.append(session)
        return session

    def fetch(self, url: str, *, auth: tuple[str, str] | None = None) -> bytes:
        try:
            return self._fetch(url, auth=auth)
        except FetchError as e:
            self._log.warning(
                "fetch_failed",
                url=e.url or url,
                status_code=e.status_code,
                reason=str(e),
            )
        except requests.RequestException as e:
            self._log.warning("fetch_transport_error", url=url, error_type=type(e).__name__, reason=str(e))
        return b""

    def _fetch(self, url: str, *, auth: tuple[str, str] | None) -> bytes:
        current = url
        redirects = 0

        while True:
            response = self._get_with_retry(current, auth=auth)
            status = int(response.status_code)
            location = response.headers.get("Location") if response.headers else None

            if _is_redirect(status) and location:
                redirects += 1
                if redirects > self._max_redirects:
                    raise FetchError(
                        f"Too many redirects (>{self._max_redirects})",
                        url=current,
                        status_code=status,
                    )
                try:
                    target = urljoin(current, location)
                except ValueError as e:
                    raise FetchError(
                        f"Invalid redirect location: {location!r}",
                        url=current,
                        status_code=status,
                    ) from e
                self._log.debug("fetch_redirect", url=current, target=target, redirects=redirects)
                current = target
                continue

            if not 200 <= status < 300:
                raise FetchError(f"HTTP {status}", url=current, status_code=status)

            body = response.content or b""
            self._log.debug("fetch_ok", url=current, status_code=status, bytes=len(body), redirects=redirects)
            return body

    def _get_with_retry(self, url: str, *, auth: tuple[str, str] | None) -> Any:
        def _do_get() -> Any:
            response = self._http().get(
                url,
                headers={"User-Agent": self._user_agent},
                auth=auth,
                timeout=self._timeout,
                allow_redirects=False,
            )
            if int(response.status_code) == RETRYABLE_STATUS:
                raise TransientStatusError(
                    f"HTTP {RETRYABLE_STATUS}",
                    url=url,
                    status_code=RETRYABLE_STATUS,
                )
            return response

        return retry_call(
            _do_get,
            policy=self._retry,
            should_retry=_retry_reason,
            operation="http_get",
            on_retry=self._on_retry,
            sleep_fn=self._sleep_fn,
            context_url=url,
        )

    def _on_retry(self, notice: RetryNotice) -> None:
        self._log.info(
            "fetch_retry",
            url=notice.context_url,
            attempt=notice.attempt,
            attempts=notice.attempts,
            pause_seconds=notice.pause_seconds,
            reason=notice.reason,
        )
