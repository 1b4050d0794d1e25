from __future__ import annotations

import re
from typing import Any, Iterable, List, Optional, Pattern, Tuple, Union

from dast.dastcore.interfaces import ConfigurationError

PatternLike = Union[str, Pattern[str]]


def expand_payloads(payloads: Any) -> List[Tuple[str, Optional[str]]]:
    """
    Payload sets come as a string, a list of strings or a
    {platform: payload(s)} mapping -> [(payload, platform), ...]
    """
    if payloads is None:
        return []
    if isinstance(payloads, str):
        return [(payloads, None)]
    if isinstance(payloads, dict):
        expanded: List[Tuple[str, Optional[str]]] = []
        for platform, values in payloads.items():
            for payload, _ in expand_payloads(values):
                expanded.append((payload, str(platform)))
        return expanded
    if isinstance(payloads, (list, tuple, set, frozenset)):
        return [(str(p), None) for p in payloads]
    raise ConfigurationError(
        f"Unsupported payload type: {type(payloads).__name__}",
        error_code="BAD_PAYLOADS",
    )


def compile_patterns(patterns: Any) -> List[Pattern[str]]:
    if patterns is None:
        return []
    if isinstance(patterns, (str, re.Pattern)):
        patterns = [patterns]
    return [p if isinstance(p, re.Pattern) else re.compile(p) for p in patterns]


def unique_matches(pattern: PatternLike, text: Optional[str]) -> List[str]:
    """Distinct non-empty matches (groups flattened) in first-seen order."""
    if not text:
        return []
    regexp = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern)
    seen: List[str] = []
    for found in regexp.findall(text):
        for match in _flatten(found):
            if match and match not in seen:
                seen.append(match)
    return seen


def _flatten(found: Any) -> Iterable[str]:
    if isinstance(found, tuple):
        return found
    return (found,)


def should_train(train: Optional[bool], original_values: bool) -> bool:
    """
    True/False force it, None (auto) trains only on submissions of the
    element's own, non-injected values.
    """
    if train is None:
        return original_values
    return bool(train)


def strip(text: Optional[str], value: Optional[str]) -> str:
    """Body with the injected value removed, so reflections do not count as differences."""
    text = text or ""
    return text.replace(value, "") if value else text
