"""
Pytest fixtures for unit tests.
"""

import logging

import pytest
import responses

from mock_data import (
    MockBrowser,
    MockHttpClient,
    ReflectedQuoteCheck,
    make_page,
    make_session,
    reflecting_responder,
)


@pytest.fixture
def responses_mock():
    """Provides a responses mock instance for mocking HTTP requests."""
    with responses.RequestsMock(assert_all_requests_are_fired=False) as rsps:
        yield rsps


@pytest.fixture
def http():
    return MockHttpClient(reflecting_responder)


@pytest.fixture
def browser():
    return MockBrowser()


@pytest.fixture
def page():
    return make_page()


@pytest.fixture
def session(http):
    return make_session(http=http, checks=[ReflectedQuoteCheck])


@pytest.fixture
def check(page, session):
    """ReflectedQuoteCheck instance bound to the default page/session."""
    return ReflectedQuoteCheck(page, session)


@pytest.fixture
def auditor(check):
    return check.auditor


@pytest.fixture(autouse=True)
def _quiet_dast_logger():
    # keep handlers installed by init_logger from leaking between tests
    logger = logging.getLogger("dast")
    handlers = list(logger.handlers)
    level = logger.level
    yield
    logger.setLevel(level)
    for handler in logger.handlers[:]:
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
