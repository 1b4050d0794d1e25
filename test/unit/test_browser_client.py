import hashlib
from unittest.mock import MagicMock

import pytest
from selenium.common.exceptions import WebDriverException
from selenium.webdriver.remote.webdriver import WebDriver

from dast.dastcore.clients.browser_client import BrowserClient, SeleniumBrowserClient
from dast.dastcore.clients.protocols import BrowserClientConfig
from dast.dastcore.dom import DOM, Transition
from dast.dastcore.interfaces import ConfigurationError


@pytest.fixture
def driver():
    drv = MagicMock(spec=WebDriver)
    drv.execute_script.return_value = "complete"
    return drv


@pytest.fixture
def client(driver):
    return SeleniumBrowserClient(driver, BrowserClientConfig(page_load_timeout=5, wait_timeout=1))


def test_requires_a_webdriver():
    with pytest.raises(ConfigurationError):
        SeleniumBrowserClient(object())


def test_sets_page_load_timeout(client, driver):
    driver.set_page_load_timeout.assert_called_once_with(5)
    assert client.raw is driver
    assert BrowserClient is SeleniumBrowserClient


def test_goto_loads_and_waits(client, driver):
    assert client.goto("http://test.com/") is True
    driver.get.assert_called_once_with("http://test.com/")
    driver.execute_script.assert_called_with("return document.readyState")


def test_goto_failure_returns_false(client, driver):
    driver.get.side_effect = WebDriverException("crashed")
    assert client.goto("http://test.com/") is False
    assert client.goto(None) is False


def test_replay_request_navigates(client, driver):
    assert client.replay(Transition("http://test.com/next", "request")) is True
    driver.get.assert_called_once_with("http://test.com/next")


def test_replay_fires_event_on_matching_element(client, driver):
    driver.execute_script.return_value = True

    assert client.replay(Transition("<a id='x'>", "click")) is True
    assert driver.execute_script.call_args[0][1:] == ("<a id='x'>", "click")

    assert client.replay(Transition("<body>", "onload")) is True
    assert driver.execute_script.call_args[0][1:] == ("<body>", "load")


def test_replay_without_match_or_with_driver_error(client, driver):
    driver.execute_script.return_value = False
    assert client.replay(Transition("<a id='gone'>", "click")) is False

    driver.execute_script.side_effect = WebDriverException("detached")
    assert client.replay(Transition("<a id='x'>", "click")) is False


def test_dom_digest_hashes_element_signatures(client, driver):
    driver.execute_script.return_value = "HTML|BODY|DIV id=main"
    assert client.dom_digest() == hashlib.sha1(b"HTML|BODY|DIV id=main").hexdigest()


def test_page_source_and_quit(client, driver):
    driver.page_source = "<html></html>"
    assert client.page_source() == "<html></html>"

    client.quit()
    driver.quit.assert_called_once()


def test_stop_swallows_driver_errors(client, driver):
    driver.execute_script.side_effect = WebDriverException("gone")
    client.stop()
    driver.execute_script.assert_called_once_with("window.stop();")


def test_dom_restore_through_selenium_client(client, driver):
    state = DOM(
        url="http://test.com/#/menu",
        transitions=[
            Transition("page", "load"),
            Transition("http://test.com/", "request"),
            Transition("<a id='menu'>", "click"),
        ],
    )

    def script(source, *args):
        return "complete" if "readyState" in source else True

    driver.execute_script.side_effect = script

    assert state.restore(client, timeout=5) is client
    driver.get.assert_called_once_with("http://test.com/")
