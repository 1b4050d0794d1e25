"""
DOM state tracker
-----------------
A page's client-side state is the ordered list of transitions (load,
navigation, fired events) that leads from the initial load to it, plus a
digest of the resulting DOM computed by the browser. Two states with the
same digest are the same state, however they were reached; explored digests
are kept as skip states so a browser-driven crawl terminates.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from dast.dastcore.interfaces import BrowserError, SerializationError

if TYPE_CHECKING:
    from dast.dastcore.clients.protocols import BrowserClientProtocol
    from dast.dastcore.page import Page

logger = logging.getLogger("dast.dom")

# Marker element of the initial page load.
PAGE = "page"

# Event kinds with a special meaning; any other DOM event name is accepted.
LOAD = "load"
REQUEST = "request"

# Per-step restore timeout (seconds) when neither the caller nor the browser sets one.
DEFAULT_REPLAY_TIMEOUT = 10.0


# ============================================================================
# Transition
# ============================================================================

@dataclass(frozen=True)
class Transition:
    """(element, event) pair recorded while the browser explored the page."""
    element: str
    event: str
    time: Optional[float] = field(default=None, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "element", str(self.element))
        object.__setattr__(self, "event", str(self.event))

    @property
    def is_initial(self) -> bool:
        return self.element == PAGE and self.event == LOAD

    @property
    def is_request(self) -> bool:
        return self.event == REQUEST

    @property
    def playable(self) -> bool:
        """Whether the event has to be re-fired through a browser."""
        return not self.is_request and not self.is_initial

    @property
    def depth(self) -> int:
        # navigation records do not add DOM depth
        return 0 if self.is_request else 1

    def play(self, browser: "BrowserClientProtocol") -> bool:
        try:
            return bool(browser.replay(self))
        except BrowserError as exc:
            logger.debug("Replay of %s failed: %s", self, exc)
            return False

    def to_rpc_data(self) -> Dict[str, Any]:
        return {"element": self.element, "event": self.event, "time": self.time}

    @classmethod
    def from_rpc_data(cls, data: Dict[str, Any]) -> "Transition":
        try:
            return cls(data["element"], data["event"], data.get("time"))
        except (KeyError, TypeError) as exc:
            raise SerializationError(f"Invalid transition data: {data!r}") from exc

    def __str__(self) -> str:
        return f"{self.element}:{self.event}"


# ============================================================================
# Sinks
# ============================================================================

@dataclass(frozen=True)
class Frame:
    """One call of a sink trace."""
    function: str
    arguments: Tuple[Any, ...] = ()
    url: Optional[str] = None
    line: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "arguments", tuple(self.arguments or ()))

    def to_rpc_data(self) -> Dict[str, Any]:
        return {
            "function": self.function,
            "arguments": list(self.arguments),
            "url": self.url,
            "line": self.line,
        }

    @classmethod
    def from_rpc_data(cls, data: Dict[str, Any]) -> "Frame":
        return cls(
            function=data["function"],
            arguments=tuple(data.get("arguments") or ()),
            url=data.get("url"),
            line=data.get("line"),
        )


@dataclass(frozen=True)
class SinkTrace:
    """Tainted data that reached a sink, with the call trace that got it there."""
    data: Tuple[Any, ...] = ()
    trace: Tuple[Frame, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "data", tuple(self.data or ()))
        object.__setattr__(
            self,
            "trace",
            tuple(f if isinstance(f, Frame) else Frame(**f) for f in (self.trace or ())),
        )

    def to_rpc_data(self) -> Dict[str, Any]:
        return {
            "data": list(self.data),
            "trace": [frame.to_rpc_data() for frame in self.trace],
        }

    @classmethod
    def from_rpc_data(cls, data: Dict[str, Any]):
        try:
            return cls(
                data=tuple(data.get("data") or ()),
                trace=tuple(Frame.from_rpc_data(f) for f in data.get("trace") or ()),
            )
        except (KeyError, TypeError) as exc:
            raise SerializationError(f"Invalid sink data: {data!r}") from exc


class DataFlow(SinkTrace):
    """Taint reached a data sink (e.g. innerHTML)."""


class ExecutionFlow(SinkTrace):
    """Payload code got executed."""


# ============================================================================
# DOM
# ============================================================================

class DOM:
    """Client-side state of exactly one page."""

    def __init__(
        self,
        url: Optional[str] = None,
        page: Optional["Page"] = None,
        transitions: Optional[Iterable[Transition]] = None,
        digest: Optional[str] = None,
        skip_states: Optional[Iterable[str]] = None,
        data_flow_sinks: Optional[Iterable[DataFlow]] = None,
        execution_flow_sinks: Optional[Iterable[ExecutionFlow]] = None,
    ):
        self.page = page
        self._url = url
        self.transitions: List[Transition] = list(transitions or [])
        self.digest = digest
        self.skip_states: Set[str] = set(skip_states or ())
        self.data_flow_sinks: List[DataFlow] = list(data_flow_sinks or [])
        self.execution_flow_sinks: List[ExecutionFlow] = list(execution_flow_sinks or [])

    @property
    def url(self) -> Optional[str]:
        """Resolved client-side URL, defaults to the page URL."""
        if self._url is None and self.page is not None:
            return self.page.url
        return self._url

    @url.setter
    def url(self, value: Optional[str]) -> None:
        self._url = value

    # ----------------------------------------------------------
    # transitions
    # ----------------------------------------------------------
    def push_transition(self, transition: Transition) -> "DOM":
        self.transitions.append(transition)
        return self

    def clear_transitions(self) -> None:
        """After this the state is assumed to be reachable by its URL alone."""
        self.transitions.clear()

    def depth(self) -> int:
        return sum(t.depth for t in self.transitions)

    def playable_transitions(self) -> List[Transition]:
        return [t for t in self.transitions if t.playable]

    @property
    def origin_url(self) -> Optional[str]:
        """URL replay starts from."""
        if self.page is not None:
            return self.page.url
        for transition in self.transitions:
            if transition.is_request:
                return transition.element
        return self.url

    # ----------------------------------------------------------
    # skip states
    # ----------------------------------------------------------
    def add_skip_state(self, state: Any) -> None:
        digest = _digest_of(state)
        if digest is not None:
            self.skip_states.add(digest)

    def is_skip_state(self, state: Any) -> bool:
        return _digest_of(state) in self.skip_states

    # ----------------------------------------------------------
    # restore
    # ----------------------------------------------------------
    def restore(self, browser: "BrowserClientProtocol", timeout: Optional[float] = None):
        """
        Brings ``browser`` to this state.

        Without playable transitions the state is URL-addressable and a plain
        navigation to ``url`` is enough. Otherwise the browser loads the
        origin URL and every playable transition is replayed in order.

        Returns the browser on success, ``None`` as soon as a step fails or
        times out; the browser is then in an untrusted state.

        Every step is bounded by ``timeout`` (else the browser's
        ``config.replay_timeout``, else ``DEFAULT_REPLAY_TIMEOUT``). A step
        that times out is abandoned on a daemon thread after ``browser.stop()``;
        it may still be running when this returns.
        """
        if timeout is None:
            timeout = getattr(getattr(browser, "config", None), "replay_timeout", None)
        if timeout is None or timeout <= 0:
            timeout = DEFAULT_REPLAY_TIMEOUT

        playables = self.playable_transitions()
        if not playables:
            logger.debug("Restoring %s by URL.", self.url)
            return browser if self._step(browser, browser.goto, self.url, timeout) else None

        logger.debug(
            "Restoring %s by replaying %d transitions from %s.",
            self.url, len(playables), self.origin_url,
        )
        if not self._step(browser, browser.goto, self.origin_url, timeout):
            return None

        for transition in playables:
            if not self._step(browser, transition.play, browser, timeout):
                logger.debug("Could not replay %s, aborting restore.", transition)
                return None
        return browser

    @staticmethod
    def _step(
        browser: "BrowserClientProtocol",
        fn: Callable[..., Any],
        arg: Any,
        timeout: float,
    ) -> bool:
        outcome: Dict[str, Any] = {}

        def target():
            try:
                outcome["result"] = fn(arg)
            except Exception as exc:  # pylint: disable=broad-except
                outcome["error"] = exc

        worker = threading.Thread(target=target, name="dast-replay", daemon=True)
        worker.start()
        worker.join(timeout)

        if worker.is_alive():
            logger.warning("Browser step timed out after %ss, stopping the browser.", timeout)
            try:
                browser.stop()
            except Exception:  # pylint: disable=broad-except
                logger.exception("Failed to stop the browser after a timeout.")
            return False

        error = outcome.get("error")
        if isinstance(error, BrowserError):
            logger.warning("Browser step failed: %s", error)
            return False
        if error is not None:
            raise error
        return bool(outcome.get("result"))

    # ----------------------------------------------------------
    # serialization
    # ----------------------------------------------------------
    def to_h(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "transitions": [t.to_rpc_data() for t in self.transitions],
            "digest": self.digest,
            "skip_states": set(self.skip_states),
            "data_flow_sinks": [s.to_rpc_data() for s in self.data_flow_sinks],
            "execution_flow_sinks": [s.to_rpc_data() for s in self.execution_flow_sinks],
        }

    def to_rpc_data(self) -> Dict[str, Any]:
        data = self.to_h()
        data["skip_states"] = sorted(self.skip_states)
        return data

    @classmethod
    def from_rpc_data(cls, data: Dict[str, Any]) -> "DOM":
        try:
            return cls(
                url=data.get("url"),
                transitions=[Transition.from_rpc_data(t) for t in data.get("transitions") or []],
                digest=data.get("digest"),
                skip_states=data.get("skip_states") or (),
                data_flow_sinks=[DataFlow.from_rpc_data(s) for s in data.get("data_flow_sinks") or []],
                execution_flow_sinks=[
                    ExecutionFlow.from_rpc_data(s) for s in data.get("execution_flow_sinks") or []
                ],
            )
        except AttributeError as exc:
            raise SerializationError(f"Invalid DOM data: {data!r}") from exc

    # equality and hashing only look at the digest
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DOM):
            return NotImplemented
        return self.digest == other.digest

    def __hash__(self) -> int:
        return hash(self.digest)

    def __repr__(self) -> str:
        return f"<DOM url={self.url!r} digest={self.digest!r} depth={self.depth()}>"


def _digest_of(state: Any) -> Optional[str]:
    if isinstance(state, DOM):
        return state.digest
    return state
