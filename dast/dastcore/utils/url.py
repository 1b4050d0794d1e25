import posixpath
from urllib.parse import parse_qsl, urlparse, urlunparse

def without_query(url: str) -> str:
    parsed = urlparse(url)
    return urlunparse((parsed.scheme, parsed.netloc, parsed.path, "", "", ""))

def query_inputs(url: str) -> dict:
    """Query string -> {name: value} (last value wins, blanks kept)."""
    return dict(parse_qsl(urlparse(url).query, keep_blank_values=True))

def basename(url: str) -> str:
    path = urlparse(url).path
    return posixpath.basename(path.rstrip("/")) if path.endswith("/") else posixpath.basename(path)

def directory(url: str) -> str:
    """URL of the directory holding the resource: http://h/a/b.php -> http://h/a/"""
    parsed = urlparse(url)
    path = parsed.path or "/"
    if not path.endswith("/"):
        path = path.rsplit("/", 1)[0] + "/"
    return urlunparse((parsed.scheme, parsed.netloc, path, "", "", ""))
