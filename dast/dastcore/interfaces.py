from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

# ============================================================================
# Enum Types
# ============================================================================

class ElementType(str, Enum):
    """Where a payload is injected and how findings are grouped."""
    LINK = "link"
    FORM = "form"
    COOKIE = "cookie"
    HEADER = "header"
    BODY = "body"
    PATH = "path"

    @classmethod
    def coerce(cls, value: Any) -> "ElementType":
        """Accepts an ElementType or its (case-insensitive) name/value."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.lower())
            except ValueError:
                pass
        raise ConfigurationError(
            f"Unknown element: {value!r}",
            error_code="UNKNOWN_ELEMENT",
            context={"element": value},
        )


# Default candidate order when neither the caller nor the check names elements.
DEFAULT_ELEMENTS: Tuple[ElementType, ...] = (
    ElementType.LINK,
    ElementType.FORM,
    ElementType.COOKIE,
    ElementType.HEADER,
    ElementType.BODY,
)


class Severity(str, Enum):
    """Severity level"""
    INFO = "INFO"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class LogLevel(str, Enum):
    """Log level"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StrategyKind(str, Enum):
    """Analysis strategy tag"""
    TAINT = "taint"
    DIFFERENTIAL = "differential"
    TIMING = "timing"
    CUSTOM = "custom"


class CheckStatus(str, Enum):
    """Check run status"""
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


# ============================================================================
# Configuration Types
# ============================================================================

@dataclass(frozen=True)
class AuditPolicy:
    """Which element kinds the active scan is allowed to audit."""
    audit_links: bool = True
    audit_forms: bool = True
    audit_cookies: bool = True
    audit_headers: bool = True
    audit_body: bool = True
    fingerprint: bool = True

    def audits(self, element_type: ElementType) -> bool:
        switches = {
            ElementType.LINK: self.audit_links,
            ElementType.FORM: self.audit_forms,
            ElementType.COOKIE: self.audit_cookies,
            ElementType.HEADER: self.audit_headers,
            ElementType.BODY: self.audit_body,
        }
        return switches.get(ElementType.coerce(element_type), False)


@dataclass(frozen=True)
class AuditOptions:
    """
    Options shared by every audit call.

    - elements: element kinds to audit (empty = check info, then DEFAULT_ELEMENTS)
    - train: True/False forces response training on/off, None means "auto"
      (train only on submissions carrying the element's original values)
    - custom_params: analyser-specific knobs (regexp, substring, pairs, timeout, ...)
    """
    elements: Tuple[Any, ...] = ()
    train: Optional[bool] = None
    custom_params: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def coerce(cls, value: Any = None) -> "AuditOptions":
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if isinstance(value, dict):
            data = dict(value)
            elements = data.pop("elements", None) or ()
            train = data.pop("train", None)
            custom = dict(data.pop("custom_params", None) or {})
            custom.update(data)
            return cls(elements=tuple(elements), train=train, custom_params=custom)
        raise ConfigurationError(
            f"Unsupported audit options: {type(value).__name__}",
            error_code="BAD_OPTIONS",
        )

    def param(self, key: str, default: Any = None) -> Any:
        return self.custom_params.get(key, default)


@dataclass(frozen=True)
class LoggingConfig:
    """Logging settings"""
    level: LogLevel = LogLevel.INFO
    file_path: Optional[Path] = None
    console_output: bool = True
    format: str = "[%(asctime)s] %(levelname)s in %(module)s: %(message)s"
    max_file_size: int = 10485760
    backup_count: int = 5


# ============================================================================
# HTTP Types
# ============================================================================

@dataclass(frozen=True)
class HTTPRequest:
    """HTTP request information"""
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    cookies: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class HTTPResponse:
    """HTTP response information"""
    status_code: int
    url: str = ""
    headers: Dict[str, str] = field(default_factory=dict)
    body: str = ""
    elapsed_ms: float = 0.0
    request: Optional[HTTPRequest] = None


# ============================================================================
# Result Types
# ============================================================================

def issue_digest(check_name: str, element_type: Any, var: Optional[str], url: Optional[str]) -> str:
    """Identity of a logical finding: check name plus element identity."""
    kind = element_type.value if isinstance(element_type, ElementType) else str(element_type)
    action = (url or "").split("?", 1)[0]
    return f"{check_name}::{kind}::{var}::{action}"


@dataclass(frozen=True)
class Issue:
    """A single finding produced by a check."""
    name: str
    url: str
    elem: ElementType
    var: Optional[str] = None
    injected: Optional[str] = None
    id: Optional[str] = None
    method: Optional[str] = None
    platform: Optional[str] = None
    platform_type: Optional[str] = None
    regexp: Optional[str] = None
    regexp_match: Optional[str] = None
    response: Optional[str] = None
    headers: Dict[str, Dict[str, str]] = field(default_factory=dict)
    verification: bool = False
    remarks: Dict[str, List[str]] = field(default_factory=dict)
    description: str = ""
    severity: Severity = Severity.MEDIUM
    cwe: Optional[str] = None
    references: Tuple[str, ...] = ()
    remedy: Optional[str] = None
    tags: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "elem", ElementType.coerce(self.elem))
        if not isinstance(self.severity, Severity):
            object.__setattr__(self, "severity", Severity(str(self.severity).upper()))
        object.__setattr__(self, "references", tuple(self.references or ()))
        object.__setattr__(self, "tags", tuple(self.tags or ()))

    @property
    def unique_id(self) -> str:
        return issue_digest(self.name, self.elem, self.var, self.url)

    def __hash__(self) -> int:
        return hash(self.unique_id)

    def to_rpc_data(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["elem"] = self.elem.value
        data["severity"] = self.severity.value
        data["references"] = list(self.references)
        data["tags"] = list(self.tags)
        return data

    @classmethod
    def from_rpc_data(cls, data: Dict[str, Any]) -> "Issue":
        allowed = {f.name for f in dataclasses.fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in allowed}
        kwargs["remarks"] = {k: list(v) for k, v in (kwargs.get("remarks") or {}).items()}
        return cls(**kwargs)


@dataclass(frozen=True)
class CheckError:
    """Check error information"""
    error_type: str
    message: str
    traceback: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class CheckRun:
    """Outcome of running one check against one page"""
    check: str
    status: CheckStatus
    url: Optional[str] = None
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    duration_seconds: float = 0.0
    issues_logged: int = 0
    error: Optional[CheckError] = None


# ============================================================================
# Error Types
# ============================================================================

class DastException(Exception):
    """Base class of every dast-core exception"""
    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN",
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.timestamp = datetime.now()
        self.context = context or {}


class ConfigurationError(DastException, ValueError):
    """Invalid configuration or caller contract violation"""
    pass


class NetworkError(DastException):
    """Transport failure"""
    pass


class BrowserError(DastException):
    """Browser driver failure"""
    pass


class SerializationError(DastException):
    """Structured round-trip failure"""
    pass
