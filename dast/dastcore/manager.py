"""
Check manager
-------------
Registry of loaded checks and the results sink every finding funnels into.
Keeps the global issue-id set that ``Auditor.skip`` consults and runs checks
against pages, turning crashes into failed ``CheckRun`` records.
"""

from __future__ import annotations

import logging
import threading
import traceback
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Type

from dast.dastcore.interfaces import (
    CheckError,
    CheckRun,
    CheckStatus,
    ConfigurationError,
    Issue,
)

if TYPE_CHECKING:
    from dast.dastcore.check import Check
    from dast.dastcore.page import Page
    from dast.dastcore.session import ScanSession


class CheckManager:
    def __init__(
        self,
        checks: Optional[Iterable[Type["Check"]]] = None,
        *,
        on_issue: Optional[Callable[[Issue], None]] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.logger = logger or logging.getLogger("dast.checks")
        self.on_issue = on_issue
        self._checks: Dict[str, Type["Check"]] = {}
        self._lock = threading.Lock()
        self._issues: List[Issue] = []
        self._issue_set: set = set()

        for check in checks or []:
            self.register(check)

    # ------------------------------------------------------------------ #
    # registry
    # ------------------------------------------------------------------ #
    def register(self, check: Type["Check"]) -> Type["Check"]:
        info = getattr(check, "info", None)
        if info is None:
            raise ConfigurationError(
                f"{check.__name__} does not declare check info.",
                error_code="BAD_CHECK",
            )
        self._checks[info.shortname] = check
        return check

    def include(self, shortname: str) -> bool:
        return shortname in self._checks

    __contains__ = include

    def __getitem__(self, shortname: str) -> Type["Check"]:
        return self._checks[shortname]

    def check_name(self, shortname: str) -> Optional[str]:
        check = self._checks.get(shortname)
        return check.info.name if check else None

    @property
    def shortnames(self) -> List[str]:
        return list(self._checks)

    # ------------------------------------------------------------------ #
    # results sink
    # ------------------------------------------------------------------ #
    def register_results(self, issues: Sequence[Issue]) -> List[Issue]:
        """Stores issues not seen before (by unique id), returns the new ones."""
        fresh: List[Issue] = []
        with self._lock:
            for issue in issues:
                if issue.unique_id in self._issue_set:
                    continue
                self._issue_set.add(issue.unique_id)
                self._issues.append(issue)
                fresh.append(issue)

        self._emit_issues(fresh)
        return fresh

    def has_issue(self, issue_id: str) -> bool:
        with self._lock:
            return issue_id in self._issue_set

    @property
    def issue_set(self) -> FrozenSet[str]:
        with self._lock:
            return frozenset(self._issue_set)

    @property
    def issues(self) -> List[Issue]:
        with self._lock:
            return list(self._issues)

    def clear_results(self) -> None:
        with self._lock:
            self._issues.clear()
            self._issue_set.clear()

    def _emit_issues(self, issues: Sequence[Issue]) -> None:
        """Per-finding hook (live console output, websocket push, ...)."""
        if not self.on_issue or not issues:
            return

        for issue in issues:
            try:
                self.on_issue(issue)
            except Exception:  # pylint: disable=broad-except
                self.logger.exception("on_issue callback raised an exception.")

    # ------------------------------------------------------------------ #
    # running
    # ------------------------------------------------------------------ #
    def run(
        self,
        page: "Page",
        session: "ScanSession",
        shortnames: Optional[Sequence[str]] = None,
    ) -> List[CheckRun]:
        """Runs the selected (default: all) checks against ``page``."""
        runs: List[CheckRun] = []
        for shortname in shortnames or self.shortnames:
            if shortname not in self._checks:
                raise ConfigurationError(
                    f"Unknown check: {shortname}",
                    error_code="UNKNOWN_CHECK",
                )
            runs.append(self.run_one(self._checks[shortname], page, session))
        return runs

    def run_one(self, check_cls: Type["Check"], page: "Page", session: "ScanSession") -> CheckRun:
        shortname = check_cls.info.shortname
        start_time = datetime.now()
        before = session.issue_count(shortname)

        if check_cls.info.max_issues is not None and before >= check_cls.info.max_issues:
            self.logger.debug("Check '%s' reached its issue limit; skipped.", shortname)
            return self._build_run(check_cls, page, start_time, CheckStatus.SKIPPED, 0)

        self.logger.debug("Running check '%s' against %s", shortname, page.url)
        try:
            check = check_cls(page, session)
            check.prepare()
            check.run()
            check.clean_up()
        except ConfigurationError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            self.logger.exception("Check '%s' crashed: %s", shortname, exc)
            error = CheckError(
                error_type=type(exc).__name__,
                message=str(exc),
                traceback=traceback.format_exc(),
            )
            return self._build_run(
                check_cls, page, start_time, CheckStatus.FAILED,
                session.issue_count(shortname) - before, error,
            )

        return self._build_run(
            check_cls, page, start_time, CheckStatus.SUCCESS,
            session.issue_count(shortname) - before,
        )

    @staticmethod
    def _build_run(
        check_cls: Type["Check"],
        page: "Page",
        start_time: datetime,
        status: CheckStatus,
        issues_logged: int,
        error: Optional[CheckError] = None,
    ) -> CheckRun:
        end_time = datetime.now()
        return CheckRun(
            check=check_cls.info.shortname,
            status=status,
            url=page.url,
            start_time=start_time,
            end_time=end_time,
            duration_seconds=(end_time - start_time).total_seconds(),
            issues_logged=issues_logged,
            error=error,
        )
