"""
Audit dispatcher
----------------
The ``Auditor`` is what a check audits through. It selects candidate
elements from the page, hands them to an analysis strategy, keeps the
session's audited ids and issue counters and funnels every issue into the
results sink.

All shared state (audited ids, counters, the global issue-id set) lives in
the ``ScanSession``; an auditor only namespaces it by its check.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from dast.dastcore.analysis.analysis_utils import compile_patterns, unique_matches
from dast.dastcore.element import Element
from dast.dastcore.fingerprint import PlatformManager
from dast.dastcore.interfaces import (
    DEFAULT_ELEMENTS,
    ConfigurationError,
    ElementType,
    HTTPResponse,
    Issue,
    NetworkError,
)
from dast.dastcore.strategies import (
    CustomStrategy,
    DifferentialStrategy,
    Strategy,
    TaintStrategy,
    TimingStrategy,
)
from dast.dastcore.utils.url import basename

if TYPE_CHECKING:
    from dast.dastcore.check import CheckInfo
    from dast.dastcore.page import Page
    from dast.dastcore.session import ScanSession


class Auditor:
    def __init__(
        self,
        info: "CheckInfo",
        page: "Page",
        session: "ScanSession",
        analyzer: Any = None,
    ):
        self.info = info
        self.page = page
        self.session = session
        self._analyzer = analyzer
        self.logger = logging.getLogger(f"dast.checks.{info.shortname}")

    @property
    def analyzer(self):
        return self._analyzer if self._analyzer is not None else self.session.analyzer

    @property
    def http(self):
        return self.session.http

    # ----------------------------------------------------------
    # candidates
    # ----------------------------------------------------------
    def _element_filter(self, elements: Optional[Iterable[Any]]) -> List[ElementType]:
        raw = list(elements or ()) or list(self.info.elements or ()) or list(DEFAULT_ELEMENTS)
        kinds = [ElementType.coerce(e) for e in raw]
        for kind in kinds:
            if kind == ElementType.PATH:
                raise ConfigurationError(
                    "Path elements can not be audited.",
                    error_code="UNKNOWN_ELEMENT",
                    context={"element": kind.value},
                )
        return kinds

    def each_candidate_element(self, elements: Optional[Iterable[Any]] = None) -> Iterator[Element]:
        """
        Detached copies of the page elements to audit, kind by kind in filter
        order (explicit ``elements``, then the check's, then the defaults),
        page order within a kind. Elements without inputs are left out.

        The filter is validated here, before the first element is produced.
        """
        return self._candidates(self._element_filter(elements))

    def _candidates(self, kinds: List[ElementType]) -> Iterator[Element]:
        for kind in kinds:
            if not self.session.policy.audits(kind):
                self.logger.debug("Auditing of %s elements is disabled.", kind.value)
                continue

            for element in self.page.elements_of(kind):
                if not element.inputs:
                    continue
                candidate = element.dup()
                candidate.auditor = self
                yield candidate

    def select_candidates(self, elements: Optional[Iterable[Any]] = None) -> List[Element]:
        return list(self.each_candidate_element(elements))

    # ----------------------------------------------------------
    # dispatch
    # ----------------------------------------------------------
    def audit(self, payloads: Any, options: Any = None, handler: Optional[Callable[..., Any]] = None) -> int:
        """Taint audit, or a custom one when ``handler`` is given."""
        if handler is not None:
            return self.run(CustomStrategy(payloads, handler, options))
        return self.run(TaintStrategy(payloads, options))

    def audit_taint(self, payloads: Any, options: Any = None) -> int:
        return self.run(TaintStrategy(payloads, options))

    def audit_rdiff(self, options: Any = None, verifier: Optional[Callable[..., bool]] = None) -> int:
        return self.run(DifferentialStrategy(options, verifier))

    def audit_timeout(self, payloads: Any, options: Any = None) -> int:
        return self.run(TimingStrategy(payloads, options))

    def run(self, strategy: Strategy) -> int:
        """Runs ``strategy`` over the candidates, returns how many were analysed."""
        if self.issue_limit_reached():
            self.logger.debug("Issue limit reached, %s not started.", strategy)
            return 0

        analysed = 0
        for element in self.each_candidate_element(strategy.options.elements or None):
            if self.issue_limit_reached():
                break
            if not self.audited(strategy.audit_key(element)):
                self.logger.debug("Already audited %s with %s", element, strategy.kind.value)
                continue

            strategy.run(element, self.analyzer)
            analysed += 1
        return analysed

    # ----------------------------------------------------------
    # audited ids / limits
    # ----------------------------------------------------------
    def _audit_id(self, audit_id: str) -> str:
        return f"{self.info.shortname}-{audit_id}"

    def audited(self, audit_id: str) -> bool:
        """Marks ``audit_id`` for this check; False if it was already marked."""
        return self.session.mark_audited(self._audit_id(audit_id))

    def is_audited(self, audit_id: str) -> bool:
        return self.session.is_audited(self._audit_id(audit_id))

    @property
    def max_issues(self) -> Optional[int]:
        return self.info.max_issues

    @property
    def preferred(self) -> Sequence[str]:
        return self.info.preferred

    def issue_limit_reached(self, count: Optional[int] = None) -> bool:
        if self.max_issues is None:
            return False
        if count is None:
            count = self.session.issue_count(self.info.shortname)
        return count >= self.max_issues

    def register_results(self, issues: Sequence[Issue]) -> List[Issue]:
        issues = list(issues)
        if not issues:
            return []
        if not self.session.reserve_issues(self.info.shortname, len(issues), self.max_issues):
            self.logger.debug("Issue limit reached, dropped %d issue(s).", len(issues))
            return []
        return self.session.checks.register_results(issues)

    def skip(self, element: Element) -> bool:
        """
        True when this check, or one of the checks it defers to, already has
        an issue for ``element``.
        """
        checks = self.session.checks
        names = [self.info.name]
        for shortname in self.preferred:
            names.append(checks.check_name(shortname) or shortname)

        return any(checks.has_issue(element.provisioned_issue_id(name)) for name in names)

    # ----------------------------------------------------------
    # remote files
    # ----------------------------------------------------------
    def log_remote_file_if_exists(
        self,
        url: Optional[str],
        silent: bool = False,
        callback: Optional[Callable[[HTTPResponse], None]] = None,
    ) -> Optional[bool]:
        """
        Probes ``url`` in the background and logs it if it exists.

        None without a URL, False when the probe could not be dispatched,
        True otherwise (the outcome arrives later).
        """
        if not url:
            return None

        if not silent:
            self.logger.info("Checking for %s", url)

        def found(response: HTTPResponse) -> None:
            if callback is not None:
                callback(response)
            self.log_remote_file(response, silent=silent)

        return self.remote_file_exist(url, found)

    log_remote_directory_if_exists = log_remote_file_if_exists

    def remote_file_exist(self, url: str, callback: Callable[[HTTPResponse], None]) -> bool:
        http = self.http
        if http is None:
            raise ConfigurationError("No HTTP client configured.", error_code="NO_HTTP_CLIENT")

        try:
            future = http.dispatch("GET", url)
        except NetworkError as exc:
            self.logger.warning("Could not probe %s: %s", url, exc)
            return False

        if future is None:
            self.logger.debug("Probe for %s was not dispatched.", url)
            return False

        def done(f: Future) -> None:
            try:
                response = f.result()
            except NetworkError as exc:
                self.logger.debug("Probe for %s failed: %s", url, exc)
                return

            if response is None or response.status_code != 200:
                return
            try:
                if http.is_custom_404(response):
                    self.logger.debug("%s is a custom 404.", url)
                    return
            except NetworkError as exc:
                self.logger.debug("Custom 404 detection for %s failed: %s", url, exc)
                return

            try:
                callback(response)
            except Exception:  # pylint: disable=broad-except
                self.logger.exception("Remote file callback raised an exception.")

        future.add_done_callback(done)
        return True

    def log_remote_file(self, response: HTTPResponse, silent: bool = False) -> Optional[Issue]:
        url = response.url
        filename = basename(url)
        issue = self.log_issue(
            url=url,
            elem=ElementType.PATH,
            injected=filename,
            id=filename,
            method=response.request.method if response.request else "GET",
            response=response.body,
            headers=_headers(response),
        )
        self.session.trainer.push(response)

        if not silent:
            self.logger.info("Found %s", url)
        return issue

    log_remote_directory = log_remote_file

    # ----------------------------------------------------------
    # logging issues
    # ----------------------------------------------------------
    def log_issue(self, **fields: Any) -> Optional[Issue]:
        """Builds an issue from ``fields`` plus the check metadata and registers it."""
        data: Dict[str, Any] = dict(self.info.issue_fields())
        data["name"] = self.info.name
        data.update(fields)
        data.setdefault("url", self.page.url)
        data.setdefault("elem", ElementType.BODY)

        platform = data.get("platform")
        if platform:
            data.setdefault("platform_type", PlatformManager.find_type(platform))
            if self.session.policy.fingerprint:
                self.session.platforms.add(data["url"], platform)

        issue = Issue(**data)
        if not self.register_results([issue]):
            return None

        self.logger.info("Found %s in %s '%s' at %s", issue.name, issue.elem.value, issue.var, issue.url)
        return issue

    def log(self, options: Dict[str, Any], response: Optional[HTTPResponse] = None) -> Optional[Issue]:
        """
        Logs an issue from analysis options:

        - element: the mutation that triggered it (fills elem/action/var/method/injected)
        - action, altered (or var), injected, match, regexp, platform, id
        - verification, remarks
        """
        opts = dict(options or {})
        response = response if response is not None else self.page.response
        element: Optional[Element] = opts.get("element")

        elem = opts.get("elem") or (element.type if element is not None else ElementType.BODY)
        url = opts.get("action") or (element.action if element is not None else None)
        if not url:
            url = response.url if response is not None and response.url else self.page.url

        var = opts.get("altered", opts.get("var"))
        if var is None and element is not None:
            var = element.altered

        method = opts.get("method") or (element.method if element is not None else None)
        if method is None and response is not None and response.request is not None:
            method = response.request.method

        injected = opts.get("injected")
        if injected is None and element is not None:
            injected = element.injected

        regexp = opts.get("regexp")
        if regexp is not None and not isinstance(regexp, str):
            regexp = regexp.pattern

        return self.log_issue(
            url=url,
            elem=elem,
            var=var,
            method=method,
            injected=injected,
            id=opts.get("id") or injected,
            platform=opts.get("platform"),
            regexp=regexp,
            regexp_match=opts.get("match"),
            verification=bool(opts.get("verification", False)),
            remarks=opts.get("remarks") or {},
            response=response.body if response is not None else None,
            headers=_headers(response),
        )

    def match_and_log(
        self,
        patterns: Any,
        text: Optional[str] = None,
        verifier: Optional[Callable[[str], bool]] = None,
    ) -> int:
        """
        Logs one issue per unique match of each pattern.

        Without ``text`` the page body is searched (if the check audits BODY)
        and so are the response header values (if it audits HEADER).
        Returns how many matches were logged.
        """
        compiled = compile_patterns(patterns)
        if text is not None:
            return self._match_and_log_in(compiled, text, ElementType.BODY, None, verifier)

        kinds = {ElementType.coerce(e) for e in (self.info.elements or DEFAULT_ELEMENTS)}
        policy = self.session.policy
        logged = 0

        if ElementType.BODY in kinds and policy.audits(ElementType.BODY):
            logged += self._match_and_log_in(compiled, self.page.body, ElementType.BODY, None, verifier)

        response = self.page.response
        if response is not None and ElementType.HEADER in kinds and policy.audits(ElementType.HEADER):
            for name, value in response.headers.items():
                logged += self._match_and_log_in(compiled, value, ElementType.HEADER, name, verifier)
        return logged

    def _match_and_log_in(self, patterns, text, elem, var, verifier) -> int:
        logged = 0
        for pattern in patterns:
            for match in unique_matches(pattern, text):
                if verifier is not None and not verifier(match):
                    continue
                issue = self.log(
                    {
                        "elem": elem,
                        "action": self.page.url,
                        "altered": var,
                        "regexp": pattern,
                        "match": match,
                    }
                )
                if issue is not None:
                    logged += 1
        return logged


def _headers(response: Optional[HTTPResponse]) -> Dict[str, Dict[str, str]]:
    if response is None:
        return {}
    request = response.request
    return {
        "request": dict(request.headers) if request is not None else {},
        "response": dict(response.headers),
    }
