"""
Check base
----------
A check declares its metadata as a ``CheckInfo`` class attribute and does its
work in ``run()`` through ``self.auditor``:

    class ReflectedQuote(Check):
        info = CheckInfo(name="Reflected quote", shortname="quote", elements=("link",))

        def run(self):
            self.auditor.audit("'")
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Dict, Optional, Tuple

from dast.dastcore.auditor import Auditor
from dast.dastcore.interfaces import ConfigurationError, ElementType, Severity

if TYPE_CHECKING:
    from dast.dastcore.page import Page
    from dast.dastcore.session import ScanSession


@dataclass(frozen=True)
class CheckInfo:
    """Check metadata; issue-related fields are merged into every logged issue."""
    name: str
    shortname: str
    description: str = ""
    elements: Tuple[ElementType, ...] = ()
    max_issues: Optional[int] = None
    preferred: Tuple[str, ...] = ()
    severity: Severity = Severity.MEDIUM
    cwe: Optional[str] = None
    references: Tuple[str, ...] = ()
    remedy: Optional[str] = None
    tags: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.name or not self.shortname:
            raise ConfigurationError("Checks need a name and a shortname.", error_code="BAD_CHECK")
        if self.max_issues is not None and self.max_issues < 0:
            raise ConfigurationError("max_issues can not be negative.", error_code="BAD_CHECK")
        object.__setattr__(self, "elements", tuple(ElementType.coerce(e) for e in self.elements))
        object.__setattr__(self, "preferred", tuple(self.preferred))
        object.__setattr__(self, "references", tuple(self.references))
        object.__setattr__(self, "tags", tuple(self.tags))
        if not isinstance(self.severity, Severity):
            object.__setattr__(self, "severity", Severity(str(self.severity).upper()))

    def issue_fields(self) -> Dict[str, Any]:
        return {
            "description": self.description,
            "severity": self.severity,
            "cwe": self.cwe,
            "references": self.references,
            "remedy": self.remedy,
            "tags": self.tags,
        }


class Check(ABC):
    info: ClassVar[CheckInfo]

    def __init__(self, page: "Page", session: "ScanSession"):
        self.page = page
        self.session = session
        self.auditor = Auditor(self.info, page, session)
        self.logger = self.auditor.logger

    def prepare(self) -> None:
        pass

    @abstractmethod
    def run(self) -> None:
        ...

    def clean_up(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.info.shortname} page={self.page.url}>"


__all__ = ["Check", "CheckInfo"]
