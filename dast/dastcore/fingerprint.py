"""Per-URL platform fingerprints gathered from logged issues."""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Dict, Optional, Set

from dast.dastcore.utils.url import without_query

PLATFORM_TYPES: Dict[str, str] = {
    # operating systems
    "linux": "os",
    "bsd": "os",
    "unix": "os",
    "windows": "os",
    "solaris": "os",
    # databases
    "mysql": "db",
    "pgsql": "db",
    "mssql": "db",
    "oracle": "db",
    "sqlite": "db",
    "db2": "db",
    "mongodb": "db",
    # web servers
    "apache": "servers",
    "nginx": "servers",
    "iis": "servers",
    "tomcat": "servers",
    "jetty": "servers",
    # languages
    "php": "languages",
    "asp": "languages",
    "aspx": "languages",
    "jsp": "languages",
    "python": "languages",
    "ruby": "languages",
    "perl": "languages",
    "nodejs": "languages",
    # frameworks
    "rails": "frameworks",
    "django": "frameworks",
    "cakephp": "frameworks",
}


class PlatformManager:
    def __init__(self):
        self._lock = threading.Lock()
        self._platforms: Dict[str, Set[str]] = defaultdict(set)

    def add(self, url: str, platform: str) -> None:
        with self._lock:
            self._platforms[without_query(url)].add(platform.lower())

    def platforms_for(self, url: str) -> Set[str]:
        with self._lock:
            return set(self._platforms.get(without_query(url), ()))

    @staticmethod
    def find_type(platform: Optional[str]) -> Optional[str]:
        if not platform:
            return None
        return PLATFORM_TYPES.get(platform.lower())

    def clear(self) -> None:
        with self._lock:
            self._platforms.clear()
