"""
Session configuration
---------------------
JSON config file -> SessionConfig -> ScanSession.

    {
      "audit":   {"elements": ["link", "form"], "fingerprint": true},
      "http":    {"retry": 2, "timeout": 5, "base_headers": {"User-Agent": "dast"}},
      "browser": {"replay_timeout": 20},
      "logging": {"level": "DEBUG", "file_path": "scan.log"}
    }

DAST_VERBOSE and DAST_LOG_FILE override the logging section.
"""

from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional, Type, Union

from dast.dastcore.clients.browser_client import SeleniumBrowserClient
from dast.dastcore.clients.http_client import RequestsHttpClient
from dast.dastcore.clients.protocols import BrowserClientConfig, HttpClientConfig
from dast.dastcore.interfaces import (
    AuditPolicy,
    ConfigurationError,
    ElementType,
    Issue,
    LoggingConfig,
    LogLevel,
)
from dast.dastcore.logger import init_logger
from dast.dastcore.manager import CheckManager
from dast.dastcore.session import ScanSession

_POLICY_SWITCHES = {
    ElementType.LINK: "audit_links",
    ElementType.FORM: "audit_forms",
    ElementType.COOKIE: "audit_cookies",
    ElementType.HEADER: "audit_headers",
    ElementType.BODY: "audit_body",
}

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class SessionConfig:
    policy: AuditPolicy = field(default_factory=AuditPolicy)
    http: HttpClientConfig = field(default_factory=HttpClientConfig)
    browser: BrowserClientConfig = field(default_factory=BrowserClientConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: Union[str, Path]) -> SessionConfig:
    """Reads a JSON config file, env overrides applied."""
    try:
        with open(path, encoding="utf-8") as fp:
            data = json.load(fp)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(
            f"Could not read config {path}: {exc}",
            error_code="CONFIG_READ_FAILED",
            context={"path": str(path)},
        ) from exc

    if not isinstance(data, dict):
        raise ConfigurationError("Config root must be an object.", error_code="BAD_CONFIG")
    return build_session_config(data)


def build_session_config(data: Optional[Dict[str, Any]] = None, env: Optional[Dict[str, str]] = None) -> SessionConfig:
    """
    dict -> SessionConfig
    Unknown sections/keys and unknown element kinds raise ConfigurationError.
    """
    data = dict(data or {})
    env = os.environ if env is None else env

    unknown = set(data) - {"audit", "http", "browser", "logging"}
    if unknown:
        raise ConfigurationError(
            f"Unknown config section(s): {', '.join(sorted(unknown))}",
            error_code="BAD_CONFIG",
        )

    # audit policy
    audit = dict(data.get("audit") or {})
    elements = audit.pop("elements", None)
    if elements is not None:
        audit.update(_switches_for(elements))
    policy = _build(AuditPolicy, audit, "audit")

    # clients
    http_cfg = _build(HttpClientConfig, data.get("http") or {}, "http")
    browser_cfg = _build(BrowserClientConfig, data.get("browser") or {}, "browser")

    # logging + env overrides
    logging_data = dict(data.get("logging") or {})
    if env.get("DAST_VERBOSE", "").lower() in _TRUTHY:
        logging_data["level"] = LogLevel.DEBUG.value
    if env.get("DAST_LOG_FILE"):
        logging_data["file_path"] = env["DAST_LOG_FILE"]
    if "level" in logging_data:
        try:
            logging_data["level"] = LogLevel(str(logging_data["level"]).upper())
        except ValueError as exc:
            raise ConfigurationError(
                f"Unknown log level: {logging_data['level']}",
                error_code="BAD_CONFIG",
            ) from exc
    if logging_data.get("file_path"):
        logging_data["file_path"] = Path(logging_data["file_path"])
    logging_cfg = _build(LoggingConfig, logging_data, "logging")

    return SessionConfig(policy=policy, http=http_cfg, browser=browser_cfg, logging=logging_cfg)


def _switches_for(elements: Iterable[Any]) -> Dict[str, bool]:
    kinds = {ElementType.coerce(e) for e in elements}
    if ElementType.PATH in kinds:
        raise ConfigurationError("Path elements can not be audited.", error_code="UNKNOWN_ELEMENT")
    return {switch: kind in kinds for kind, switch in _POLICY_SWITCHES.items()}


def _build(cls: Type[Any], values: Dict[str, Any], section: str) -> Any:
    allowed = {f.name for f in dataclasses.fields(cls)}
    unknown = set(values) - allowed
    if unknown:
        raise ConfigurationError(
            f"Unknown key(s) in '{section}': {', '.join(sorted(unknown))}",
            error_code="BAD_CONFIG",
            context={"section": section},
        )
    return cls(**values)


def configure_logging(config: LoggingConfig):
    return init_logger(
        verbose=config.level == LogLevel.DEBUG,
        log_file=str(config.file_path) if config.file_path else None,
        console_output=config.console_output,
        max_bytes=config.max_file_size,
        backup_count=config.backup_count,
    )


def build_session(
    config: Optional[SessionConfig] = None,
    *,
    checks: Iterable[Any] = (),
    on_issue: Optional[Callable[[Issue], None]] = None,
    http: Any = None,
    driver: Any = None,
) -> ScanSession:
    """
    ScanSession with a requests-backed client unless ``http`` is given.
    The logging section is applied to the "dast" logger; a Selenium
    ``driver``, when given, is wrapped with the browser section.
    """
    config = config or SessionConfig()
    configure_logging(config.logging)
    return ScanSession(
        policy=config.policy,
        checks=CheckManager(checks, on_issue=on_issue),
        http=http if http is not None else RequestsHttpClient(config.http),
        browser=SeleniumBrowserClient(driver, config.browser) if driver is not None else None,
    )
