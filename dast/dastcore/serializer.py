# Structured round-trip for cross-process transport

from __future__ import annotations

import json
from typing import Any, Dict, Type, TypeVar, Union

from dast.dastcore.interfaces import SerializationError

T = TypeVar("T")


def _serialize_default(obj: Any) -> Any:
    """json.dumps fallback: datetimes to ISO8601, sets to sorted lists"""
    if hasattr(obj, "isoformat"):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset)):
        return sorted(obj)
    if hasattr(obj, "to_rpc_data"):
        return obj.to_rpc_data()
    return str(obj)


def rpc_data(obj: Any) -> Dict[str, Any]:
    """Plain structured value of a core value object."""
    to_rpc = getattr(obj, "to_rpc_data", None)
    if not callable(to_rpc):
        raise SerializationError(
            f"{type(obj).__name__} does not support structured serialization",
            error_code="NOT_SERIALIZABLE",
        )
    return to_rpc()


def dump(obj: Any) -> str:
    return json.dumps(rpc_data(obj), ensure_ascii=False, default=_serialize_default)


def load(payload: Union[str, bytes]) -> Dict[str, Any]:
    try:
        return json.loads(payload)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Invalid payload: {exc}", error_code="BAD_PAYLOAD") from exc


def restore(payload: Union[str, bytes, Dict[str, Any]], cls: Type[T]) -> T:
    """Rebuilds an instance of ``cls`` from dumped text or plain data."""
    data = payload if isinstance(payload, dict) else load(payload)
    return cls.from_rpc_data(data)  # type: ignore[attr-defined]


def deep_clone(obj: T) -> T:
    return restore(dump(obj), type(obj))
