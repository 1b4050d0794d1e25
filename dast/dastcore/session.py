"""
Scan session
------------
Explicit owner of the state shared by every check invocation of one scan:
audited ids, per-check issue counters, the results sink, the trainer and
platform fingerprints. ``reset()`` is the only way any of it is cleared.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Dict, Optional, Set

from dast.dastcore.analysis.analyzer import HttpElementAnalyzer
from dast.dastcore.fingerprint import PlatformManager
from dast.dastcore.interfaces import AuditPolicy
from dast.dastcore.manager import CheckManager
from dast.dastcore.trainer import Trainer

logger = logging.getLogger("dast.session")


class ScanSession:
    def __init__(
        self,
        *,
        policy: Optional[AuditPolicy] = None,
        checks: Optional[CheckManager] = None,
        http: Any = None,
        analyzer: Any = None,
        trainer: Optional[Trainer] = None,
        platforms: Optional[PlatformManager] = None,
        browser: Any = None,
    ):
        self.policy = policy or AuditPolicy()
        self.checks = checks if checks is not None else CheckManager()
        self.http = http
        # used to restore DOM states, optional
        self.browser = browser
        self.trainer = trainer if trainer is not None else Trainer()
        self.platforms = platforms if platforms is not None else PlatformManager()
        self._analyzer = analyzer

        self._lock = threading.Lock()
        self._audited: Set[str] = set()
        self._issue_counters: Dict[str, int] = defaultdict(int)

    @property
    def analyzer(self):
        """Element-level analyser, HTTP driven unless one was injected."""
        if self._analyzer is None:
            self._analyzer = HttpElementAnalyzer(self.http)
        return self._analyzer

    # ----------------------------------------------------------
    # audited ids
    # ----------------------------------------------------------
    def mark_audited(self, key: str) -> bool:
        """Records ``key``; False if it was already there (check-and-set)."""
        with self._lock:
            if key in self._audited:
                return False
            self._audited.add(key)
            return True

    def is_audited(self, key: str) -> bool:
        with self._lock:
            return key in self._audited

    # ----------------------------------------------------------
    # issue counters
    # ----------------------------------------------------------
    def issue_count(self, check: str) -> int:
        with self._lock:
            return self._issue_counters.get(check, 0)

    def reserve_issues(self, check: str, count: int, max_issues: Optional[int]) -> bool:
        """
        Ceiling check and increment in one step. False (and no increment) once
        the counter has reached ``max_issues``.
        """
        with self._lock:
            current = self._issue_counters.get(check, 0)
            if max_issues is not None and current >= max_issues:
                return False
            self._issue_counters[check] = current + count
            return True

    # ----------------------------------------------------------
    # lifecycle
    # ----------------------------------------------------------
    def reset(self) -> None:
        """Clears everything scoped to one scan run."""
        with self._lock:
            self._audited.clear()
            self._issue_counters.clear()
        self.checks.clear_results()
        self.trainer.clear()
        self.platforms.clear()
        logger.debug("Scan session reset.")
