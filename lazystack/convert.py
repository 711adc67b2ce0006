"""
Conversion between host values and the external value model.

The external model is what the engine and JSON understand: dicts with
string keys, lists and scalars. Host values may additionally use
tuples, sets, dataclasses, enums and namespaced Key objects as dict keys.

Key policy:
- Key("ns", "name") -> "ns/name"
- Key(None, "name") or "name" -> "name"

The conversion is lossy on purpose: from_external() never rebuilds a Key,
so a namespaced key comes back as the plain string "ns/name".

Deferred values and Resource handles are opaque references. They are left
in place and converted lazily, once their value resolves.
"""

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from .deferred import Deferred


@dataclass(frozen=True)
class Key:
    """
    Composite mapping key made of an optional namespace and a name.

    Attributes:
        namespace: Namespace part, or None for a bare key
        name: Name part
    """
    namespace: Optional[str]
    name: str

    @classmethod
    def parse(cls, text: str) -> "Key":
        """Parse "ns/name" into a namespaced Key, anything else into a bare one."""
        namespace, sep, name = text.partition("/")
        if sep and namespace and name:
            return cls(namespace, name)
        return cls(None, text)

    def __str__(self) -> str:
        return key_name(self)


class ValueKind(str, Enum):
    """How a value is treated during conversion."""
    SCALAR = "scalar"
    MAPPING = "mapping"
    SEQUENCE = "sequence"
    DEFERRED = "deferred"
    RESOURCE = "resource"


def _is_resource(value: Any) -> bool:
    from .resource import Resource
    return isinstance(value, Resource)


def classify(value: Any) -> ValueKind:
    """Decide once how a value is converted."""
    if isinstance(value, Deferred):
        return ValueKind.DEFERRED
    if _is_resource(value):
        return ValueKind.RESOURCE
    if isinstance(value, Mapping):
        return ValueKind.MAPPING
    if isinstance(value, (list, tuple, set, frozenset)):
        return ValueKind.SEQUENCE
    if isinstance(value, Key):
        return ValueKind.SCALAR
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return ValueKind.MAPPING
    return ValueKind.SCALAR


def key_name(key: Any) -> str:
    """Serialize a mapping key, keeping the namespace as "ns/name"."""
    if isinstance(key, Key):
        if key.namespace:
            return f"{key.namespace}/{key.name}"
        return key.name
    if isinstance(key, Enum):
        return str(key.value)
    return key if isinstance(key, str) else str(key)


def _sorted_members(members) -> list:
    try:
        return sorted(members)
    except TypeError:
        return sorted(members, key=repr)


def to_external(value: Any, key_fn: Optional[Callable[[Any], str]] = None) -> Any:
    """
    Convert a host value to the external model.

    Args:
        value: Any host value
        key_fn: Key serializer, defaults to key_name()

    Returns:
        The converted value. Deferreds and Resources are returned as is.
    """
    key_fn = key_fn or key_name
    kind = classify(value)

    if kind in (ValueKind.DEFERRED, ValueKind.RESOURCE):
        return value
    if kind == ValueKind.MAPPING:
        if not isinstance(value, Mapping):
            value = {field.name: getattr(value, field.name) for field in dataclasses.fields(value)}
        return {key_fn(k): to_external(v, key_fn) for k, v in value.items()}
    if kind == ValueKind.SEQUENCE:
        if isinstance(value, (set, frozenset)):
            value = _sorted_members(value)
        return [to_external(item, key_fn) for item in value]
    if isinstance(value, Key):
        return key_fn(value)
    if isinstance(value, Enum):
        return value.value
    return value


def from_external(value: Any) -> Any:
    """
    Convert an external value back to host dicts and lists.

    Keys stay plain strings: "ns/name" is not turned back into a Key.
    """
    kind = classify(value)

    if kind in (ValueKind.DEFERRED, ValueKind.RESOURCE):
        return value
    if kind == ValueKind.MAPPING:
        if not isinstance(value, Mapping):
            return to_external(value)
        return {str(k): from_external(v) for k, v in value.items()}
    if kind == ValueKind.SEQUENCE:
        return [from_external(item) for item in value]
    return value
