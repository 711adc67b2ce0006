"""
Preparing values to leave the process (stdout, JSON, logs).

sanitize() replaces every Resource in a structure with a small mapping of
its identity fields, so whole resource graphs are never expanded and
resource internals are never externalized by accident.
"""

import json
import pprint
from collections.abc import Mapping
from typing import Any

from .convert import to_external
from .deferred import Deferred, lift
from .resource import Resource, output_map

UNKNOWN = "[unknown]"
SECRET = "[secret]"


def _walk(node: Any, keys: tuple) -> Any:
    # pre-order: replace first, then descend into the replacement
    if isinstance(node, Resource):
        node = output_map(node, *keys)
    if isinstance(node, Mapping):
        return {k: _walk(v, keys) for k, v in node.items()}
    if isinstance(node, list):
        return [_walk(v, keys) for v in node]
    if isinstance(node, tuple):
        return tuple(_walk(v, keys) for v in node)
    if isinstance(node, (set, frozenset)):
        return [_walk(v, keys) for v in node]
    return node


def sanitize(value: Any, keys: tuple = ()) -> Any:
    """
    Replace resources with {urn, id, *keys} and convert to the external model.

    Args:
        value: Any structure, possibly containing Resources and Deferreds
        keys: Extra output names to keep for every resource

    Returns:
        External value; Deferreds are kept in place
    """
    return to_external(_walk(value, tuple(keys)))


def _contains_resource(node: Any) -> bool:
    if isinstance(node, Resource):
        return True
    if isinstance(node, Mapping):
        return any(_contains_resource(v) for v in node.values())
    if isinstance(node, (list, tuple, set, frozenset)):
        return any(_contains_resource(v) for v in node)
    return False


def _settled(value: Any) -> Deferred:
    """Deferred of the sanitized value, also sanitizing resources that Deferreds resolve to."""
    return lift(sanitize(value)).apply(
        lambda plain: _settled(plain) if _contains_resource(plain) else plain
    )


def to_json(value: Any, **dump_kwargs: Any) -> Deferred:
    """Deferred JSON string of a sanitized value."""
    return _settled(value).apply(lambda plain: json.dumps(plain, **dump_kwargs))


def pretty(value: Any) -> Deferred:
    """Deferred pretty-printed rendering; namespaced keys stay "ns/name"."""
    return _settled(value).apply(lambda plain: pprint.pformat(plain, sort_dicts=True))


def snapshot(value: Any, unknown: Any = UNKNOWN, reveal_secrets: bool = False) -> Any:
    """
    Read a structure of Deferreds synchronously.

    Resolved Deferreds become their values (secret ones become SECRET
    unless reveal_secrets), pending ones become unknown.

    Raises:
        ResolutionFailure: If any Deferred failed
    """
    if isinstance(value, Deferred):
        if value.is_pending:
            return unknown
        resolved = value.value()
        if value.is_secret and not reveal_secrets:
            return SECRET
        return snapshot(resolved, unknown, reveal_secrets)
    if isinstance(value, Mapping):
        return {k: snapshot(v, unknown, reveal_secrets) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [snapshot(v, unknown, reveal_secrets) for v in value]
    return value
