"""
Candidate elements
------------------
Input surfaces of a page (link parameters, form fields, cookies, request
headers and the body pseudo-element). The auditor works on detached copies
produced by ``dup()``; analysers derive per-input mutations from them and
submit those through an HTTP client.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import Any, ClassVar, Dict, Iterator, Optional

from dast.dastcore.interfaces import ElementType, HTTPResponse, issue_digest
from dast.dastcore.utils.url import query_inputs, without_query


class Element(ABC):
    """Base element: an action URL plus named inputs."""

    type: ClassVar[ElementType]

    def __init__(
        self,
        action: str,
        inputs: Optional[Dict[str, str]] = None,
        method: str = "GET",
    ):
        self.action = action
        self.method = (method or "GET").upper()
        self.inputs: Dict[str, str] = dict(inputs or {})
        self.auditor: Any = None
        # set on mutations only
        self.altered: Optional[str] = None
        self.injected: Optional[str] = None

    # ----------------------------------------------------------
    # identity
    # ----------------------------------------------------------
    @property
    def id(self) -> str:
        return f"{self.type.value}:{self.method}:{self.action}:{','.join(sorted(self.inputs))}"

    def provisioned_issue_id(self, check_name: str) -> str:
        """Unique id an issue logged by ``check_name`` for this element would get."""
        return issue_digest(check_name, self.type, self.altered, self.action)

    # ----------------------------------------------------------
    # copies / mutations
    # ----------------------------------------------------------
    def dup(self) -> "Element":
        clone = copy.copy(self)
        clone.inputs = dict(self.inputs)
        return clone

    def mutate(self, name: str, value: str) -> "Element":
        mutation = self.dup()
        mutation.inputs[name] = value
        mutation.altered = name
        mutation.injected = value
        return mutation

    def mutations(self, payload: str) -> Iterator["Element"]:
        """One copy per input, with ``payload`` in place of that input's value."""
        for name in self.inputs:
            yield self.mutate(name, payload)

    # ----------------------------------------------------------
    # submission
    # ----------------------------------------------------------
    @abstractmethod
    def submit(self, http: Any, **kwargs) -> HTTPResponse:
        ...

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Element):
            return NotImplemented
        return (self.type, self.method, self.action, self.inputs) == (
            other.type, other.method, other.action, other.inputs,
        )

    def __hash__(self) -> int:
        return hash((self.type, self.method, self.action, tuple(sorted(self.inputs.items()))))

    def __repr__(self) -> str:
        altered = f" altered={self.altered!r}" if self.altered else ""
        return f"<{self.__class__.__name__} {self.method} {self.action} inputs={self.inputs!r}{altered}>"


class Link(Element):
    type = ElementType.LINK

    @classmethod
    def from_url(cls, url: str) -> "Link":
        return cls(without_query(url), query_inputs(url))

    def submit(self, http: Any, **kwargs) -> HTTPResponse:
        return http.request("GET", self.action, params=dict(self.inputs), **kwargs)


class Form(Element):
    type = ElementType.FORM

    def submit(self, http: Any, **kwargs) -> HTTPResponse:
        if self.method == "GET":
            return http.request("GET", self.action, params=dict(self.inputs), **kwargs)
        return http.request(self.method, self.action, data=dict(self.inputs), **kwargs)


class Cookie(Element):
    type = ElementType.COOKIE

    def submit(self, http: Any, **kwargs) -> HTTPResponse:
        return http.request("GET", self.action, cookies=dict(self.inputs), **kwargs)


class Header(Element):
    type = ElementType.HEADER

    def submit(self, http: Any, **kwargs) -> HTTPResponse:
        return http.request("GET", self.action, headers=dict(self.inputs), **kwargs)


class Body(Element):
    """Page body pseudo-element, carries no inputs and is never injected."""
    type = ElementType.BODY

    def __init__(self, action: str, body: str = ""):
        super().__init__(action)
        self.body = body or ""

    def mutations(self, payload: str) -> Iterator[Element]:
        return iter(())

    def submit(self, http: Any, **kwargs) -> HTTPResponse:
        return http.request("GET", self.action, **kwargs)
