"""
HTTP Client (requests based)
- wraps requests.Session: retry/backoff/timeout/SSL/headers in one place
- answers with dast HTTPResponse records, transport failures become NetworkError
- background dispatch (probes) on a ThreadPoolExecutor
- custom 404 detection per directory
"""

from __future__ import annotations

import difflib
import logging
import secrets
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Dict, List, Optional

import requests
from requests import RequestException, Response, Session

from dast.dastcore.interfaces import HTTPRequest, HTTPResponse, NetworkError
from dast.dastcore.utils.url import directory

from .protocols import HttpClientConfig, HttpClientProtocol

logger = logging.getLogger("dast.http")


class RequestsHttpClient(HttpClientProtocol):
    """
    requests.Session wrapper.
    - every HTTP request of a scan goes through here
    - backoff, timeout, SSL, headers and session reuse in one place
    """

    def __init__(
        self,
        config: Optional[HttpClientConfig] = None,
        session: Optional[Session] = None,
    ):
        self.config = config or HttpClientConfig()
        self.s = session or requests.Session()

        if self.config.base_headers:
            self.s.headers.update(self.config.base_headers)

        # HTTP log hook (injected by the caller)
        self.log_hook = None

        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._closed = False
        self._404_signatures: Dict[str, List[str]] = {}

    # internal: retry wrapper
    def _send_with_retry(self, method: str, url: str, **kwargs) -> Response:
        retry = self.config.retry
        backoff = self.config.backoff

        # base_url support (optional)
        if self.config.base_url and not url.startswith("http"):
            url = self.config.base_url.rstrip("/") + "/" + url.lstrip("/")

        merged_kwargs = dict(
            timeout=self.config.timeout,
            verify=self.config.verify_ssl,
            allow_redirects=self.config.allow_redirects,
        )
        merged_kwargs.update(kwargs)

        for attempt in range(retry + 1):
            try:
                res = self.s.request(method=method, url=url, **merged_kwargs)

                if self.log_hook:
                    self.log_hook(method, url, merged_kwargs, res)

                return res

            except RequestException as exc:
                if attempt >= retry:
                    raise NetworkError(
                        f"{method} {url} failed: {exc}",
                        error_code="HTTP_REQUEST_FAILED",
                        context={"method": method, "url": url, "attempts": attempt + 1},
                    ) from exc
                logger.debug("%s %s failed (attempt %d), retrying: %s", method, url, attempt + 1, exc)
                time.sleep(backoff * (2**attempt))

        raise NetworkError(f"{method} {url} failed unexpectedly", error_code="HTTP_REQUEST_FAILED")

    # Public API
    def request(self, method: str, url: str, **kwargs) -> HTTPResponse:
        return to_http_response(self._send_with_retry(method, url, **kwargs))

    def get(self, url: str, **kwargs) -> HTTPResponse:
        return self.request("GET", url, **kwargs)

    def post(self, url: str, data=None, **kwargs) -> HTTPResponse:
        return self.request("POST", url, data=data, **kwargs)

    def dispatch(self, method: str, url: str, **kwargs) -> Optional[Future]:
        """Runs the request in the background; None once the client is closed."""
        with self._lock:
            if self._closed:
                return None
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.config.max_workers,
                    thread_name_prefix="dast-http",
                )
            executor = self._executor

        try:
            return executor.submit(self.request, method, url, **kwargs)
        except RuntimeError:
            # shut down between the check and the submit
            return None

    # ----------------------------------------------------------
    # custom 404
    # ----------------------------------------------------------
    def is_custom_404(self, response: HTTPResponse) -> bool:
        """
        True when ``response`` looks like the page the server returns for
        files that do not exist in the same directory.
        """
        directory_url = directory(response.url)
        with self._lock:
            signatures = self._404_signatures.get(directory_url)

        if signatures is None:
            signatures = self._fetch_404_signatures(directory_url)
            with self._lock:
                self._404_signatures[directory_url] = signatures

        body = response.body or ""
        return any(_similarity(body, signature) >= self.config.custom_404_similarity for signature in signatures)

    def _fetch_404_signatures(self, directory_url: str) -> List[str]:
        signatures = []
        for _ in range(self.config.custom_404_probes):
            probe = self.request("GET", directory_url + secrets.token_hex(8))
            # real 404s leave nothing to compare against
            if probe.status_code == 200:
                signatures.append(probe.body or "")
        logger.debug("Collected %d custom 404 signature(s) for %s", len(signatures), directory_url)
        return signatures

    # convenience methods
    def set_header(self, key: str, value: str) -> None:
        self.s.headers[key] = value

    def set_cookie(self, key: str, value: str, domain: Optional[str] = None) -> None:
        self.s.cookies.set(key, value, domain=domain)

    # Context Manager
    def close(self) -> None:
        with self._lock:
            self._closed = True
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)
        self.s.close()

    def __enter__(self) -> "RequestsHttpClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def to_http_response(res: Response) -> HTTPResponse:
    request = None
    if res.request is not None:
        body = res.request.body
        if isinstance(body, bytes):
            body = body.decode("utf-8", errors="replace")
        request = HTTPRequest(
            method=res.request.method or "GET",
            url=res.request.url or res.url,
            headers=dict(res.request.headers),
            body=body,
        )

    elapsed = getattr(res, "elapsed", None)
    return HTTPResponse(
        status_code=res.status_code,
        url=res.url,
        headers=dict(res.headers),
        body=res.text,
        elapsed_ms=elapsed.total_seconds() * 1000 if elapsed is not None else 0.0,
        request=request,
    )


def _similarity(a: str, b: str) -> float:
    return difflib.SequenceMatcher(None, a, b).ratio()


HttpClient = RequestsHttpClient

__all__ = [
    "HttpClientConfig",
    "RequestsHttpClient",
    "HttpClient",
    "to_http_response",
]
