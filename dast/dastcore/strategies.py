"""
Analysis strategies
-------------------
Closed set of the ways an auditor can attack a candidate element. Each
strategy carries its own payloads/options and knows how to analyse one
element; the auditor only iterates candidates and keeps the audited ids.
"""

from __future__ import annotations

import hashlib
import json
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from dast.dastcore.element import Element
from dast.dastcore.interfaces import AuditOptions, ConfigurationError, HTTPResponse, StrategyKind


def payload_digest(payloads: Any) -> str:
    text = json.dumps(payloads, sort_keys=True, default=str)
    return hashlib.sha1(text.encode("utf-8")).hexdigest()[:12]


class Strategy(ABC):
    kind: StrategyKind

    def __init__(self, payloads: Any = None, options: Any = None):
        self.payloads = payloads
        self.options = AuditOptions.coerce(options)

    def audit_key(self, element: Element) -> str:
        """Audited-id entry: kind, element identity and payload set."""
        return f"{self.kind.value}:{element.id}:{payload_digest(self.payloads)}"

    @abstractmethod
    def run(self, element: Element, analyzer: Any) -> None:
        ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} payloads={self.payloads!r}>"


class TaintStrategy(Strategy):
    kind = StrategyKind.TAINT

    def run(self, element: Element, analyzer: Any) -> None:
        analyzer.taint_analysis(element, self.payloads, self.options)


class DifferentialStrategy(Strategy):
    kind = StrategyKind.DIFFERENTIAL

    def __init__(
        self,
        options: Any = None,
        verifier: Optional[Callable[[Element, HTTPResponse], bool]] = None,
    ):
        super().__init__(None, options)
        self.verifier = verifier

    def audit_key(self, element: Element) -> str:
        params = self.options.custom_params
        return f"{self.kind.value}:{element.id}:{payload_digest([params.get('pairs'), params.get('faults')])}"

    def run(self, element: Element, analyzer: Any) -> None:
        analyzer.rdiff_analysis(element, self.options, self.verifier)


class TimingStrategy(Strategy):
    kind = StrategyKind.TIMING

    def run(self, element: Element, analyzer: Any) -> None:
        analyzer.timeout_analysis(element, self.payloads, self.options)


class CustomStrategy(Strategy):
    """Caller supplied handler, called once per candidate element."""
    kind = StrategyKind.CUSTOM

    def __init__(self, payloads: Any, handler: Callable[..., Any], options: Any = None):
        if not callable(handler):
            raise ConfigurationError("Custom strategy handler must be callable.", error_code="BAD_HANDLER")
        super().__init__(payloads, options)
        self.handler = handler

    def audit_key(self, element: Element) -> str:
        name = getattr(self.handler, "__qualname__", repr(self.handler))
        return f"{self.kind.value}:{name}:{element.id}:{payload_digest(self.payloads)}"

    def run(self, element: Element, analyzer: Any) -> None:
        self.handler(element, self.payloads, self.options)
