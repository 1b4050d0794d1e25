"""
Browser Client (Selenium based)

- wraps a WebDriver behind BrowserClientProtocol
- exposes only what DOM restoration needs: navigation, event replay,
  DOM digests, page source and stopping
- driver failures are logged and reported as False, never raised
"""

from __future__ import annotations

import hashlib
import logging
from typing import Any, Callable, Optional

from selenium.common.exceptions import WebDriverException
from selenium.webdriver.remote.webdriver import WebDriver
from selenium.webdriver.support.ui import WebDriverWait

from dast.dastcore.dom import Transition
from dast.dastcore.interfaces import ConfigurationError

from .protocols import BrowserClientConfig, BrowserClientProtocol

logger = logging.getLogger("dast.browser")

# Fires arguments[1] on the first element whose markup starts with arguments[0].
_REPLAY_SCRIPT = """
var tag = arguments[0], evt = arguments[1];
var nodes = document.getElementsByTagName('*');
for (var i = 0; i < nodes.length; i++) {
    if (nodes[i].outerHTML.indexOf(tag) !== 0) { continue; }
    if (evt === 'click' && typeof nodes[i].click === 'function') {
        nodes[i].click();
    } else {
        nodes[i].dispatchEvent(new Event(evt, {bubbles: true, cancelable: true}));
    }
    return true;
}
if (tag === 'window' || tag === 'document') {
    (tag === 'window' ? window : document).dispatchEvent(new Event(evt));
    return true;
}
return false;
"""

# Tag names plus attributes (not text) of every element, in document order.
_DIGEST_SCRIPT = """
var nodes = document.getElementsByTagName('*'), out = [];
for (var i = 0; i < nodes.length; i++) {
    var sig = nodes[i].tagName, attrs = nodes[i].attributes;
    for (var j = 0; j < attrs.length; j++) { sig += ' ' + attrs[j].name + '=' + attrs[j].value; }
    out.push(sig);
}
return out.join('|');
"""


class SeleniumBrowserClient(BrowserClientProtocol):
    """Wraps a WebDriver behind the common interface."""

    def __init__(self, driver: Any, config: Optional[BrowserClientConfig] = None):
        if not isinstance(driver, WebDriver):
            raise ConfigurationError(
                "driver must be a Selenium WebDriver instance.",
                error_code="BAD_DRIVER",
            )

        self.driver = driver
        self.config = config or BrowserClientConfig()

        if self.config.page_load_timeout is not None:
            self.driver.set_page_load_timeout(self.config.page_load_timeout)

    # ----------------------------------------------------------
    # navigation
    # ----------------------------------------------------------
    def goto(self, url: Optional[str]) -> bool:
        """Loads ``url`` and waits for the document to finish loading."""
        if not url:
            return False
        try:
            self.driver.get(url)
            self.wait(lambda d: d.execute_script("return document.readyState") == "complete")
        except WebDriverException as exc:
            logger.warning("Could not load %s: %s", url, exc)
            return False
        return True

    def replay(self, transition: Transition) -> bool:
        if transition.is_request:
            return self.goto(transition.element)

        event = transition.event[2:] if transition.event.startswith("on") else transition.event
        try:
            fired = self.driver.execute_script(_REPLAY_SCRIPT, transition.element, event)
        except WebDriverException as exc:
            logger.warning("Could not replay %s: %s", transition, exc)
            return False

        if not fired:
            logger.debug("No element matches %s", transition)
        return bool(fired)

    # ----------------------------------------------------------
    # Wait API (explicit waits)
    # ----------------------------------------------------------
    def wait(self, fn: Callable, timeout: Optional[float] = None) -> Any:
        wait_timeout = timeout or self.config.wait_timeout
        waiter = WebDriverWait(self.driver, wait_timeout, poll_frequency=self.config.poll_frequency)
        return waiter.until(fn)

    # ----------------------------------------------------------
    # state
    # ----------------------------------------------------------
    def dom_digest(self) -> str:
        signature = self.driver.execute_script(_DIGEST_SCRIPT) or ""
        return hashlib.sha1(signature.encode("utf-8")).hexdigest()

    def page_source(self) -> str:
        return self.driver.page_source

    # ----------------------------------------------------------
    # shutdown
    # ----------------------------------------------------------
    def stop(self) -> None:
        """Stops pending loads and scripts, the session stays usable."""
        try:
            self.driver.execute_script("window.stop();")
        except WebDriverException as exc:
            logger.debug("window.stop() failed: %s", exc)

    def quit(self) -> None:
        self.driver.quit()

    # raw driver access
    @property
    def raw(self) -> WebDriver:
        return self.driver


BrowserClient = SeleniumBrowserClient


__all__ = [
    "SeleniumBrowserClient",
    "BrowserClient",
]
