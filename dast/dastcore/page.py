from __future__ import annotations

from dataclasses import dataclass, field
from http.cookies import CookieError, SimpleCookie
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from dast.dastcore.dom import DOM
from dast.dastcore.element import Body, Cookie, Element, Form, Header, Link
from dast.dastcore.interfaces import ConfigurationError, ElementType, HTTPResponse
from dast.dastcore.utils.url import query_inputs


@dataclass
class Page:
    """
    Narrow page interface consumed by the auditor: static content, the
    elements a crawler extracted and, for browser-explored pages, a DOM state.
    """
    url: str
    body: str = ""
    response: Optional[HTTPResponse] = None
    links: List[Link] = field(default_factory=list)
    forms: List[Form] = field(default_factory=list)
    cookies: List[Cookie] = field(default_factory=list)
    headers: List[Header] = field(default_factory=list)
    dom: Optional[DOM] = None

    def __post_init__(self):
        if self.dom is None:
            self.dom = DOM(page=self)
        elif self.dom.page is None:
            self.dom.page = self

    @classmethod
    def from_response(cls, response: HTTPResponse, **elements) -> "Page":
        """
        Builds a page straight from a response. Without explicit elements the
        URL's query and the anchors of an HTML body become Links, the body's
        forms become Forms and Set-Cookie headers become Cookies.
        """
        url = response.url
        soup = _soup(response)
        if "links" not in elements:
            elements["links"] = _links(url, soup)
        if "forms" not in elements:
            elements["forms"] = _forms(url, soup)
        if "cookies" not in elements:
            elements["cookies"] = _cookies_from_headers(url, response.headers)
        return cls(url=url, body=response.body or "", response=response, **elements)

    def elements_of(self, element_type: ElementType) -> List[Element]:
        """Page elements of one kind, in page order."""
        element_type = ElementType.coerce(element_type)
        if element_type == ElementType.LINK:
            return list(self.links)
        if element_type == ElementType.FORM:
            return list(self.forms)
        if element_type == ElementType.COOKIE:
            return list(self.cookies)
        if element_type == ElementType.HEADER:
            return list(self.headers)
        if element_type == ElementType.BODY:
            return [Body(self.url, self.body)]
        raise ConfigurationError(
            f"Unknown element: {element_type.value}",
            error_code="UNKNOWN_ELEMENT",
            context={"element": element_type.value},
        )

    @property
    def elements(self) -> List[Element]:
        return [*self.links, *self.forms, *self.cookies, *self.headers]


def _cookies_from_headers(url: str, headers: dict) -> List[Cookie]:
    raw = next((v for k, v in (headers or {}).items() if k.lower() == "set-cookie"), None)
    if not raw:
        return []
    jar = SimpleCookie()
    try:
        jar.load(raw)
    except CookieError:
        return []
    return [Cookie(url, {name: morsel.value}) for name, morsel in jar.items()]


def _soup(response: HTTPResponse) -> Optional[BeautifulSoup]:
    content_type = next((v for k, v in (response.headers or {}).items() if k.lower() == "content-type"), "")
    if not response.body or (content_type and "html" not in content_type.lower()):
        return None
    return BeautifulSoup(response.body, "html.parser")


def _links(url: str, soup: Optional[BeautifulSoup]) -> List[Link]:
    hrefs = [url]
    if soup is not None:
        hrefs += [urljoin(url, a["href"]) for a in soup.find_all("a", href=True)]

    links, seen = [], set()
    for href in hrefs:
        if not href.startswith(("http://", "https://")) or not query_inputs(href):
            continue
        link = Link.from_url(href)
        if link.id not in seen:
            seen.add(link.id)
            links.append(link)
    return links


def _forms(url: str, soup: Optional[BeautifulSoup]) -> List[Form]:
    if soup is None:
        return []

    forms = []
    for form in soup.find_all("form"):
        inputs = {}
        for field in form.find_all(["input", "textarea", "select"]):
            name = field.get("name")
            if name:
                inputs[name] = field.get("value", "")
        if not inputs:
            continue
        action = urljoin(url, form.get("action") or url)
        forms.append(Form(action, inputs, method=form.get("method", "GET")))
    return forms
