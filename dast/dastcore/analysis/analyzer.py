"""
HTTP element analysers
----------------------
Element-level analysis behind ``Auditor.audit_taint / audit_rdiff /
audit_timeout``: every candidate is mutated input by input, submitted
through the session HTTP client and the responses are inspected.

- taint: the payload (or a pattern/substring) shows up in the response
- rdiff: true/false boolean pairs give stable, different responses
- timing: a payload asking for a delay actually delays the response
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterator, Optional, Tuple

from dast.dastcore.analysis.analysis_constants import (
    DEFAULT_RDIFF_FAULTS,
    DEFAULT_RDIFF_PAIRS,
    DEFAULT_RDIFF_PRECISION,
    DEFAULT_TIMEOUT_DIVIDER,
    DEFAULT_TIMING_TIMEOUT_MS,
    TIMING_PLACEHOLDER,
)
from dast.dastcore.analysis.analysis_utils import (
    compile_patterns,
    expand_payloads,
    should_train,
    strip,
    unique_matches,
)
from dast.dastcore.element import Element
from dast.dastcore.interfaces import AuditOptions, ConfigurationError, HTTPResponse, NetworkError

logger = logging.getLogger("dast.analysis")

Verifier = Callable[[Element, HTTPResponse], bool]


class HttpElementAnalyzer:
    def __init__(self, http: Any = None):
        self.http = http

    # ----------------------------------------------------------
    # taint
    # ----------------------------------------------------------
    def taint_analysis(self, element: Element, payloads: Any, options: AuditOptions) -> None:
        auditor = element.auditor
        logged = set()

        for payload, platform in expand_payloads(payloads):
            for mutation in element.mutations(payload):
                if auditor.skip(mutation):
                    continue

                response = self._submit(mutation, options, original=False)
                if response is None:
                    continue

                for regexp, match in self._taint_matches(response.body, payload, options, auditor):
                    key = (mutation.altered, match)
                    if key in logged:
                        continue
                    logged.add(key)
                    auditor.log(
                        {
                            "element": mutation,
                            "altered": mutation.altered,
                            "injected": mutation.injected,
                            "regexp": regexp,
                            "match": match,
                            "platform": platform,
                        },
                        response,
                    )

    @staticmethod
    def _taint_matches(
        body: str, payload: str, options: AuditOptions, auditor: Any,
    ) -> Iterator[Tuple[Optional[str], str]]:
        original = getattr(auditor.page, "body", "") or ""
        patterns = compile_patterns(options.param("regexp"))

        if patterns:
            for pattern in patterns:
                for match in unique_matches(pattern, body):
                    # already on the untouched page, not our doing
                    if match in original:
                        continue
                    yield pattern.pattern, match
            return

        needle = options.param("substring") or payload
        if needle and needle in (body or "") and needle not in original:
            yield None, needle

    # ----------------------------------------------------------
    # rdiff
    # ----------------------------------------------------------
    def rdiff_analysis(
        self,
        element: Element,
        options: AuditOptions,
        verifier: Optional[Verifier] = None,
    ) -> None:
        auditor = element.auditor
        pairs = options.param("pairs") or DEFAULT_RDIFF_PAIRS
        faults = options.param("faults") or DEFAULT_RDIFF_FAULTS
        precision = int(options.param("precision", DEFAULT_RDIFF_PRECISION))

        control = self._submit(element, options, original=True)
        if control is None:
            return

        for name, value in element.inputs.items():
            for true_expr, false_expr in pairs:
                probe = element.mutate(name, f"{value}{true_expr}")
                if auditor.skip(probe):
                    break

                response = self._rdiff_round(
                    element, name, value, true_expr, false_expr, faults, precision, control, options,
                )
                if response is None:
                    continue
                if verifier is not None and not verifier(probe, response):
                    logger.debug("Verifier rejected rdiff result for %s", probe)
                    continue

                auditor.log(
                    {
                        "element": probe,
                        "altered": name,
                        "injected": probe.injected,
                        "remarks": {"differential_analysis": [f"true: {true_expr!r}, false: {false_expr!r}"]},
                    },
                    response,
                )
                break

    def _rdiff_round(
        self, element, name, value, true_expr, false_expr, faults, precision, control, options,
    ) -> Optional[HTTPResponse]:
        control_body = control.body or ""
        true_response = None

        for _ in range(max(precision, 1)):
            true_value = f"{value}{true_expr}"
            false_value = f"{value}{false_expr}"

            true_response = self._submit(element.mutate(name, true_value), options, original=False)
            false_response = self._submit(element.mutate(name, false_value), options, original=False)
            if true_response is None or false_response is None:
                return None

            true_body = strip(true_response.body, true_value)
            if true_response.status_code != 200 or true_body != strip(control_body, true_value):
                return None
            if strip(false_response.body, false_value) == true_body:
                return None

            for fault in faults:
                fault_value = f"{value}{fault}"
                fault_response = self._submit(element.mutate(name, fault_value), options, original=False)
                if fault_response is None or strip(fault_response.body, fault_value) == true_body:
                    return None

        return true_response

    # ----------------------------------------------------------
    # timing
    # ----------------------------------------------------------
    def timeout_analysis(self, element: Element, payloads: Any, options: AuditOptions) -> None:
        auditor = element.auditor
        timeout = float(options.param("timeout", DEFAULT_TIMING_TIMEOUT_MS))
        divider = float(options.param("timeout_divider", DEFAULT_TIMEOUT_DIVIDER))

        for payload, platform in expand_payloads(payloads):
            for mutation in element.mutations(_delay(payload, timeout, divider)):
                if auditor.skip(mutation):
                    continue

                response = self._submit(mutation, options, original=False)
                if response is None or response.elapsed_ms < timeout:
                    continue

                # a longer delay has to show up as a longer response time
                doubled = element.mutate(mutation.altered, _delay(payload, timeout * 2, divider))
                verification = self._submit(doubled, options, original=False)
                if verification is None or verification.elapsed_ms < timeout * 2:
                    continue

                control = self._submit(element, options, original=True)
                if control is None or control.elapsed_ms >= timeout:
                    logger.debug("Control request to %s is slow too, not a timing issue.", element.action)
                    continue

                auditor.log(
                    {
                        "element": mutation,
                        "altered": mutation.altered,
                        "injected": mutation.injected,
                        "platform": platform,
                        "remarks": {
                            "timing_attack": [
                                f"Delayed by {response.elapsed_ms:.0f}ms (expected {timeout:.0f}ms), "
                                f"verified with {verification.elapsed_ms:.0f}ms, control {control.elapsed_ms:.0f}ms",
                            ],
                        },
                    },
                    response,
                )

    # ----------------------------------------------------------
    # submission
    # ----------------------------------------------------------
    def _submit(self, element: Element, options: AuditOptions, *, original: bool) -> Optional[HTTPResponse]:
        if self.http is None:
            raise ConfigurationError("No HTTP client configured for analysis.", error_code="NO_HTTP_CLIENT")

        try:
            response = element.submit(self.http)
        except NetworkError as exc:
            logger.warning("Request to %s failed: %s", element.action, exc)
            return None

        trainer = getattr(getattr(element.auditor, "session", None), "trainer", None)
        if trainer is not None and should_train(options.train, original):
            trainer.push(response)
        return response


def _delay(payload: str, timeout: float, divider: float) -> str:
    seconds = timeout / divider
    value = str(int(seconds)) if seconds == int(seconds) else str(seconds)
    return payload.replace(TIMING_PLACEHOLDER, value)
