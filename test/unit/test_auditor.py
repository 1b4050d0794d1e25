import pytest

from dast.dastcore.auditor import Auditor
from dast.dastcore.check import CheckInfo
from dast.dastcore.element import Cookie, Element, Form, Header, Link
from dast.dastcore.interfaces import (
    AuditPolicy,
    ConfigurationError,
    ElementType,
    HTTPResponse,
    Issue,
    Severity,
)

from mock_data import (
    DeferringCheck,
    MockHttpClient,
    ReflectedQuoteCheck,
    TARGET,
    make_page,
    make_session,
    reflecting_responder,
)


def _issue(name="Reflected quote", var="myvar", url=TARGET, elem=ElementType.LINK):
    return Issue(name=name, url=url, elem=elem, var=var)


def _rich_page():
    return make_page(
        links=[Link(TARGET, {"myvar": "my value"}), Link(TARGET + "empty", {})],
        forms=[Form(TARGET + "login", {"user": "", "pass": ""}, method="POST")],
        cookies=[Cookie(TARGET, {"sid": "123"})],
        headers=[Header(TARGET, {"User-Agent": "dast"})],
        body="<html>hello</html>",
    )


def _auditor(page=None, session=None, **info):
    info.setdefault("name", "Generic")
    info.setdefault("shortname", "generic")
    return Auditor(CheckInfo(**info), page or _rich_page(), session or make_session())


# ---------------------------------------------------------------- candidates
def test_select_candidates_excludes_elements_without_inputs():
    auditor = _auditor()
    candidates = auditor.select_candidates([ElementType.LINK])

    assert len(candidates) == 1
    assert candidates[0].inputs == {"myvar": "my value"}


def test_select_candidates_default_order_and_body_never_yielded():
    auditor = _auditor()
    kinds = [c.type for c in auditor.select_candidates()]

    assert kinds == [ElementType.LINK, ElementType.FORM, ElementType.COOKIE, ElementType.HEADER]


def test_select_candidates_follows_filter_order():
    auditor = _auditor()
    kinds = [c.type for c in auditor.select_candidates(["cookie", "link"])]

    assert kinds == [ElementType.COOKIE, ElementType.LINK]


def test_select_candidates_falls_back_to_check_elements():
    auditor = _auditor(elements=(ElementType.FORM,))
    assert [c.type for c in auditor.select_candidates()] == [ElementType.FORM]
    # explicit argument wins
    assert [c.type for c in auditor.select_candidates([ElementType.HEADER])] == [ElementType.HEADER]


def test_candidates_are_detached_copies_tagged_with_auditor():
    page = _rich_page()
    auditor = _auditor(page=page)
    candidate = auditor.select_candidates([ElementType.LINK])[0]

    assert candidate.auditor is auditor
    assert candidate is not page.links[0]
    candidate.inputs["myvar"] = "changed"
    assert page.links[0].inputs["myvar"] == "my value"


def test_policy_disabled_kinds_are_excluded():
    session = make_session(policy=AuditPolicy(audit_links=False))
    auditor = _auditor(session=session)

    assert [c.type for c in auditor.select_candidates([ElementType.LINK, ElementType.COOKIE])] == [ElementType.COOKIE]


@pytest.mark.parametrize("kind", ["path", "nonsense", 42])
def test_invalid_element_filter_raises_before_any_element(kind):
    auditor = _auditor()
    with pytest.raises(ConfigurationError):
        auditor.each_candidate_element([ElementType.LINK, kind])


# ---------------------------------------------------------------- audited ids / limits
def test_audited_is_scoped_to_the_check():
    session = make_session()
    first = _auditor(session=session, shortname="first")
    second = _auditor(session=session, shortname="second")

    assert first.audited("some-id") is True
    assert first.is_audited("some-id")
    assert not second.is_audited("some-id")
    # already there
    assert first.audited("some-id") is False


def test_register_results_noop_once_limit_reached():
    session = make_session()
    auditor = _auditor(session=session, max_issues=1)

    assert auditor.register_results([_issue(name="Generic", var="a")])
    assert session.issue_count("generic") == 1
    assert auditor.issue_limit_reached()

    assert auditor.register_results([_issue(name="Generic", var="b")]) == []
    assert session.issue_count("generic") == 1
    assert len(session.checks.issues) == 1


def test_register_results_counts_whole_batch():
    session = make_session()
    auditor = _auditor(session=session, max_issues=2)

    auditor.register_results([_issue(name="Generic", var="a")])
    auditor.register_results([_issue(name="Generic", var="b"), _issue(name="Generic", var="c")])

    assert session.issue_count("generic") == 3
    assert auditor.register_results([_issue(name="Generic", var="d")]) == []
    assert session.issue_count("generic") == 3


def test_unlimited_checks_never_reach_limit():
    auditor = _auditor()
    assert auditor.max_issues is None
    assert not auditor.issue_limit_reached(10**6)


# ---------------------------------------------------------------- skip
def test_skip_false_on_empty_issue_set(auditor):
    element = Link(TARGET, {"myvar": "x"}).mutate("myvar", "'")
    assert not auditor.skip(element)


def test_skip_true_once_provisioned_issue_is_logged(auditor, session):
    element = Link(TARGET, {"myvar": "x"}).mutate("myvar", "'")
    session.checks.register_results([_issue()])

    assert auditor.skip(element)
    assert not auditor.skip(Link(TARGET, {"other": "x"}).mutate("other", "'"))


def test_skip_consults_preferred_checks(page):
    session = make_session(checks=[ReflectedQuoteCheck, DeferringCheck])
    deferring = DeferringCheck(page, session)
    element = Link(TARGET, {"myvar": "x"}).mutate("myvar", "<tag>")

    assert not deferring.auditor.skip(element)
    session.checks.register_results([_issue(name="Reflected quote")])
    assert deferring.auditor.skip(element)


# ---------------------------------------------------------------- audit
def test_end_to_end_taint_on_link(page, session, http):
    check = ReflectedQuoteCheck(page, session)

    candidates = check.auditor.select_candidates([ElementType.LINK])
    assert len(candidates) == 1
    assert list(candidates[0].inputs) == ["myvar"]

    check.run()

    issues = session.checks.issues
    assert len(issues) == 1
    issue = issues[0]
    assert issue.name == "Reflected quote"
    assert issue.elem == ElementType.LINK
    assert issue.var == "myvar"
    assert issue.injected == "'"
    assert issue.url == TARGET
    assert issue.method == "GET"
    assert issue.severity == Severity.HIGH
    assert issue.tags == ("xss",)
    assert issue.unique_id == candidates[0].mutate("myvar", "'").provisioned_issue_id("Reflected quote")
    assert http.calls == [("GET", TARGET, {"params": {"myvar": "'"}})]


def test_audit_is_not_repeated_for_same_element(page, session, http):
    check = ReflectedQuoteCheck(page, session)

    assert check.auditor.audit("'") == 1
    assert check.auditor.audit("'") == 0
    assert len(http.calls) == 1


def test_taint_skips_reflections_already_on_page(session):
    page = make_page(body="<html>it's here</html>")
    check = ReflectedQuoteCheck(page, session)

    check.run()
    assert session.checks.issues == []


def test_taint_ignores_non_reflecting_targets():
    session = make_session(http=MockHttpClient(), checks=[ReflectedQuoteCheck])
    ReflectedQuoteCheck(make_page(), session).run()

    assert session.checks.issues == []


def test_taint_with_many_payloads_logs_one_issue_per_input(page, session):
    check = ReflectedQuoteCheck(page, session)
    check.auditor.audit(["'", '"', "<x>"])

    assert len(session.checks.issues) == 1


def test_audit_with_handler_runs_custom_strategy(auditor):
    seen = []

    def handler(element, payloads, options):
        seen.append((element.type, dict(element.inputs), payloads, options.param("marker")))

    assert auditor.audit(["a", "b"], {"marker": 1}, handler=handler) == 1
    assert seen == [(ElementType.LINK, {"myvar": "my value"}, ["a", "b"], 1)]


def test_audit_stops_once_limit_reached(page):
    session = make_session(checks=[ReflectedQuoteCheck])
    auditor = _auditor(page=page, session=session, max_issues=0)

    assert auditor.audit("'") == 0
    assert session.http.calls == []


def test_option_elements_override_candidates(session):
    page = make_page(cookies=[Cookie(TARGET, {"sid": "1"})])
    check = ReflectedQuoteCheck(page, session)

    check.auditor.audit("'", {"elements": [ElementType.COOKIE]})

    issue = session.checks.issues[0]
    assert issue.elem == ElementType.COOKIE
    assert issue.var == "sid"


# ---------------------------------------------------------------- remote files
def _file_responder(found_url, status=200):
    def responder(method, url, kwargs):
        if url == found_url:
            return HTTPResponse(status, url=url, body="backup contents")
        return HTTPResponse(404, url=url, body="not found")
    return responder


def test_log_remote_file_without_url_returns_none(auditor):
    assert auditor.log_remote_file_if_exists(None) is None
    assert auditor.log_remote_file_if_exists("") is None


def test_log_remote_file_when_dispatch_fails():
    session = make_session(http=MockHttpClient(dispatch_ok=False))
    auditor = _auditor(session=session)

    assert auditor.log_remote_file_if_exists(TARGET + "backup.zip") is False
    assert session.checks.issues == []


def test_log_remote_file_logs_path_issue():
    url = TARGET + "backup.zip"
    session = make_session(http=MockHttpClient(_file_responder(url)))
    auditor = _auditor(session=session)
    found = []

    assert auditor.log_remote_file_if_exists(url, silent=True, callback=found.append) is True

    assert [r.url for r in found] == [url]
    issue = session.checks.issues[0]
    assert issue.elem == ElementType.PATH
    assert issue.url == url
    assert issue.injected == "backup.zip"
    assert issue.id == "backup.zip"
    assert issue.response == "backup contents"


def test_log_remote_directory_alias():
    url = TARGET + "admin/"
    session = make_session(http=MockHttpClient(_file_responder(url)))
    auditor = _auditor(session=session)

    assert auditor.log_remote_directory_if_exists(url) is True
    assert session.checks.issues[0].injected == "admin"


@pytest.mark.parametrize("client", [
    MockHttpClient(_file_responder(TARGET + "backup.zip", status=403)),
    MockHttpClient(_file_responder(TARGET + "backup.zip"), custom_404=True),
])
def test_missing_or_custom_404_files_are_not_logged(client):
    session = make_session(http=client)
    auditor = _auditor(session=session)
    found = []

    assert auditor.log_remote_file_if_exists(TARGET + "backup.zip", callback=found.append) is True
    assert found == []
    assert session.checks.issues == []


# ---------------------------------------------------------------- match_and_log
def _signature_page():
    return make_page(
        body="Warning: mysql_fetch_array() ... mysql_fetch_array() again",
        links=[],
    )


def test_match_and_log_searches_body_and_headers():
    page = _signature_page()
    page.response = HTTPResponse(200, url=TARGET, headers={"X-Powered-By": "PHP/5.4.1"}, body=page.body)
    session = make_session()
    auditor = _auditor(page=page, session=session)

    assert auditor.match_and_log([r"mysql_\w+", r"PHP/[\d.]+"]) == 2

    issues = {(i.elem, i.var, i.regexp_match) for i in session.checks.issues}
    assert issues == {
        (ElementType.BODY, None, "mysql_fetch_array"),
        (ElementType.HEADER, "X-Powered-By", "PHP/5.4.1"),
    }


def test_match_and_log_respects_check_elements():
    auditor = _auditor(page=_signature_page(), elements=(ElementType.LINK,))
    assert auditor.match_and_log(r"mysql_\w+") == 0


def test_match_and_log_verifier_can_reject():
    auditor = _auditor(page=_signature_page())
    assert auditor.match_and_log(r"mysql_\w+", verifier=lambda match: False) == 0


def test_match_and_log_on_given_text():
    session = make_session()
    auditor = _auditor(page=_signature_page(), session=session)

    assert auditor.match_and_log(r"secret=(\w+)", text="a secret=abc b secret=abc") == 1
    assert session.checks.issues[0].regexp == r"secret=(\w+)"
    assert session.checks.issues[0].regexp_match == "abc"


def test_match_and_log_counts_only_issues_the_sink_kept():
    session = make_session()
    page = make_page(body="error: foo ... error: bar", links=[])
    auditor = _auditor(page=page, session=session)

    # both body matches share the same unique id
    assert auditor.match_and_log(r"error: \w+") == 1
    assert len(session.checks.issues) == 1


def test_match_and_log_counts_nothing_past_the_ceiling():
    session = make_session()
    auditor = _auditor(page=_signature_page(), session=session, max_issues=0)

    assert auditor.match_and_log(r"mysql_\w+") == 0
    assert session.checks.issues == []


# ---------------------------------------------------------------- log
def test_log_records_platform_fingerprint(auditor, session):
    element = Link(TARGET, {"id": "1"}).mutate("id", "x")
    issue = auditor.log({"element": element, "platform": "mysql"})

    assert issue.platform == "mysql"
    assert issue.platform_type == "db"
    assert session.platforms.platforms_for(TARGET) == {"mysql"}


def test_log_without_fingerprinting(page):
    session = make_session(policy=AuditPolicy(fingerprint=False), http=MockHttpClient(reflecting_responder))
    auditor = ReflectedQuoteCheck(page, session).auditor

    auditor.log({"element": Link(TARGET, {"id": "1"}).mutate("id", "x"), "platform": "php"})
    assert session.platforms.platforms_for(TARGET) == set()


def test_elements_must_implement_submit():
    class Unsubmittable(Element):
        type = ElementType.LINK

    with pytest.raises(TypeError):
        Unsubmittable(TARGET, {"a": "1"})
