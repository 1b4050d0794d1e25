"""
dast.dastcore.clients public API

- RequestsHttpClient / SeleniumBrowserClient as the default implementations
- Protocols and configs exported alongside
"""

from .protocols import (
    HttpClientProtocol,
    BrowserClientProtocol,
    ResultsSinkProtocol,
    TrainerProtocol,
    ElementAnalyzerProtocol,
    HttpClientConfig,
    BrowserClientConfig,
)

from .http_client import (
    RequestsHttpClient,
    HttpClient,
)

from .browser_client import (
    SeleniumBrowserClient,
    BrowserClient,
)

__all__ = [
    # protocols
    "HttpClientProtocol",
    "BrowserClientProtocol",
    "ResultsSinkProtocol",
    "TrainerProtocol",
    "ElementAnalyzerProtocol",

    # config
    "HttpClientConfig",
    "BrowserClientConfig",

    # http client
    "RequestsHttpClient",
    "HttpClient",

    # browser client
    "SeleniumBrowserClient",
    "BrowserClient",
]
