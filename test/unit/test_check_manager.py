import pytest

from dast.dastcore.check import Check, CheckInfo
from dast.dastcore.interfaces import CheckStatus, ConfigurationError, ElementType, Issue
from dast.dastcore.manager import CheckManager

from mock_data import (
    CrashingCheck,
    LimitedCheck,
    ReflectedQuoteCheck,
    TARGET,
    make_page,
    make_session,
)


def _issue(var="a", name="Reflected quote"):
    return Issue(name=name, url=TARGET, elem=ElementType.LINK, var=var)


def test_registry():
    manager = CheckManager([ReflectedQuoteCheck, CrashingCheck])

    assert manager.shortnames == ["reflected_quote", "crashing"]
    assert "crashing" in manager
    assert manager.include("reflected_quote")
    assert manager["crashing"] is CrashingCheck
    assert manager.check_name("reflected_quote") == "Reflected quote"
    assert manager.check_name("missing") is None


def test_register_requires_check_info():
    class NoInfo(Check):
        def run(self):
            pass

    with pytest.raises(ConfigurationError):
        CheckManager([NoInfo])


def test_register_results_deduplicates_by_unique_id():
    manager = CheckManager()

    fresh = manager.register_results([_issue("a"), _issue("a"), _issue("b")])

    assert [i.var for i in fresh] == ["a", "b"]
    assert manager.register_results([_issue("a")]) == []
    assert manager.has_issue(_issue("b").unique_id)
    assert manager.issue_set == frozenset({_issue("a").unique_id, _issue("b").unique_id})


def test_on_issue_called_per_fresh_issue():
    seen = []
    manager = CheckManager(on_issue=seen.append)

    manager.register_results([_issue("a")])
    manager.register_results([_issue("a"), _issue("b")])

    assert [i.var for i in seen] == ["a", "b"]


def test_on_issue_errors_do_not_propagate(caplog):
    def explode(issue):
        raise RuntimeError("callback failed")

    manager = CheckManager(on_issue=explode)
    assert len(manager.register_results([_issue("a")])) == 1
    assert "on_issue callback raised" in caplog.text


def test_run_successful_check():
    session = make_session(checks=[ReflectedQuoteCheck])

    runs = session.checks.run(make_page(), session)

    assert len(runs) == 1
    assert runs[0].status == CheckStatus.SUCCESS
    assert runs[0].issues_logged == 1
    assert runs[0].url == TARGET
    assert runs[0].duration_seconds >= 0


def test_crashing_check_becomes_failed_run():
    session = make_session(checks=[CrashingCheck])

    run = session.checks.run(make_page(), session)[0]

    assert run.status == CheckStatus.FAILED
    assert run.error.error_type == "RuntimeError"
    assert run.error.message == "boom"
    assert "RuntimeError" in run.error.traceback


def test_check_over_its_limit_is_skipped():
    session = make_session(checks=[LimitedCheck])
    page = make_page()

    first = session.checks.run(page, session)[0]
    second = session.checks.run(page, session)[0]

    assert first.status == CheckStatus.SUCCESS
    assert first.issues_logged == 1
    assert second.status == CheckStatus.SKIPPED
    assert len(session.checks.issues) == 1


def test_unknown_check_raises():
    session = make_session(checks=[ReflectedQuoteCheck])
    with pytest.raises(ConfigurationError):
        session.checks.run(make_page(), session, ["nope"])


def test_configuration_errors_propagate():
    class BadFilter(Check):
        info = CheckInfo(name="Bad filter", shortname="bad_filter")

        def run(self):
            self.auditor.audit("'", {"elements": ["path"]})

    session = make_session(checks=[BadFilter])
    with pytest.raises(ConfigurationError):
        session.checks.run(make_page(), session)


def test_lifecycle_order():
    calls = []

    class Lifecycle(Check):
        info = CheckInfo(name="Lifecycle", shortname="lifecycle")

        def prepare(self):
            calls.append("prepare")

        def run(self):
            calls.append("run")

        def clean_up(self):
            calls.append("clean_up")

    session = make_session(checks=[Lifecycle])
    session.checks.run(make_page(), session)

    assert calls == ["prepare", "run", "clean_up"]


def test_check_info_validation():
    info = CheckInfo(name="n", shortname="s", elements=("link", "Cookie"), severity="low")
    assert info.elements == (ElementType.LINK, ElementType.COOKIE)
    assert info.issue_fields()["severity"].value == "LOW"

    with pytest.raises(ConfigurationError):
        CheckInfo(name="", shortname="s")
    with pytest.raises(ConfigurationError):
        CheckInfo(name="n", shortname="s", max_issues=-1)
    with pytest.raises(ConfigurationError):
        CheckInfo(name="n", shortname="s", elements=("websocket",))


def test_check_without_run_can_not_be_instantiated():
    class NoRun(Check):
        info = CheckInfo(name="No run", shortname="no_run")

    with pytest.raises(TypeError):
        NoRun(make_page(), make_session())
