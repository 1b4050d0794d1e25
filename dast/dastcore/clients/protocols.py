"""
Client protocols
----------------
Narrow interfaces the core consumes, plus the configs of their default
implementations.

- HttpClientProtocol: requests-backed HTTP client (http_client.py)
- BrowserClientProtocol: Selenium-backed browser (browser_client.py)
- ResultsSinkProtocol / TrainerProtocol / ElementAnalyzerProtocol: the scan
  session collaborators an auditor talks to

Implementations live elsewhere; this module only describes them.
"""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Protocol, Sequence

if TYPE_CHECKING:
    from dast.dastcore.dom import Transition
    from dast.dastcore.element import Element
    from dast.dastcore.interfaces import AuditOptions, HTTPResponse, Issue


# ----------------------------------------------------------
# HTTP Client Protocol + Config
# ----------------------------------------------------------
class HttpClientProtocol(Protocol):
    """Synchronous requests plus background dispatch for probes."""

    def request(self, method: str, url: str, **kwargs) -> "HTTPResponse": ...
    def get(self, url: str, **kwargs) -> "HTTPResponse": ...
    def post(self, url: str, data=None, **kwargs) -> "HTTPResponse": ...

    def dispatch(self, method: str, url: str, **kwargs) -> Optional[Future]: ...
    def is_custom_404(self, response: "HTTPResponse") -> bool: ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class HttpClientConfig:
    retry: int = 1
    backoff: float = 0.2
    timeout: Optional[float] = 10.0
    verify_ssl: bool = True
    base_headers: Dict[str, str] = field(default_factory=dict)
    allow_redirects: bool = True
    base_url: Optional[str] = None
    max_workers: int = 8
    # two pages at least this similar are "the same" not-found page
    custom_404_similarity: float = 0.9
    custom_404_probes: int = 2


# ----------------------------------------------------------
# Browser Client Protocol + Config
# ----------------------------------------------------------
class BrowserClientProtocol(Protocol):
    """What DOM restoration needs from a browser."""

    config: Any

    def goto(self, url: str) -> bool: ...
    def replay(self, transition: "Transition") -> bool: ...
    def dom_digest(self) -> str: ...
    def page_source(self) -> str: ...
    def stop(self) -> None: ...
    def quit(self) -> None: ...


@dataclass(frozen=True)
class BrowserClientConfig:
    wait_timeout: float = 15
    poll_frequency: float = 0.5
    page_load_timeout: Optional[float] = 30
    # per-step timeout of DOM.restore
    replay_timeout: Optional[float] = 10


# ----------------------------------------------------------
# Session collaborators
# ----------------------------------------------------------
class ResultsSinkProtocol(Protocol):
    def register_results(self, issues: Sequence["Issue"]) -> List["Issue"]: ...
    def has_issue(self, issue_id: str) -> bool: ...
    def include(self, shortname: str) -> bool: ...
    def check_name(self, shortname: str) -> Optional[str]: ...


class TrainerProtocol(Protocol):
    def push(self, response: Optional["HTTPResponse"]) -> None: ...


class ElementAnalyzerProtocol(Protocol):
    def taint_analysis(self, element: "Element", payloads: Any, options: "AuditOptions") -> None: ...

    def rdiff_analysis(
        self,
        element: "Element",
        options: "AuditOptions",
        verifier: Optional[Callable[["Element", "HTTPResponse"], bool]] = None,
    ) -> None: ...

    def timeout_analysis(self, element: "Element", payloads: Any, options: "AuditOptions") -> None: ...


__all__ = [
    "HttpClientProtocol",
    "BrowserClientProtocol",
    "ResultsSinkProtocol",
    "TrainerProtocol",
    "ElementAnalyzerProtocol",
    "HttpClientConfig",
    "BrowserClientConfig",
]
