"""
Deferred values - results that are only known after the engine resolves them.

A Deferred is single-assignment: it starts pending and settles exactly
once, either resolved with a value or failed with a ResolutionFailure.
Consumers never block. They register continuations that run when the
value arrives:

- apply() / transform(): derive a new Deferred from one value
- join(): wait for an ordered group of values, yield a tuple
- bind(): join named values and call a body with them as keywords
- stringify(): concatenate literal and deferred string parts
- lift(): turn a structure that contains Deferreds into one Deferred

Every derived Deferred inherits two pieces of metadata from its sources:
- the secret tag (logical OR of all sources, sticky once set)
- the set of resources the value depends on (union of all sources)

Continuations for one Deferred run in registration order. A Deferred
that never settles (preview mode) leaves every dependent pending.
"""

import logging
from collections.abc import Mapping
from typing import Any, Callable, Iterable, Iterator, Optional

from .errors import LazystackError, ResolutionFailure, UnresolvedError

logger = logging.getLogger(__name__)


PENDING = "pending"
RESOLVED = "resolved"
FAILED = "failed"


def _as_failure(exc: Exception) -> ResolutionFailure:
    """Wrap an arbitrary exception as a ResolutionFailure, keeping the cause."""
    if isinstance(exc, ResolutionFailure):
        return exc
    failure = ResolutionFailure(f"{type(exc).__name__}: {exc}")
    failure.__cause__ = exc
    return failure


class Deferred:
    """
    A value that becomes available later.

    Attributes:
        is_secret: True when the value must not be displayed in plaintext
        resources: Resources this value depends on
    """

    def __init__(self, *, secret: bool = False, resources: Iterable[Any] = ()):
        self._state = PENDING
        self._value: Any = None
        self._error: Optional[ResolutionFailure] = None
        self._secret = bool(secret)
        self._resources = frozenset(resources)
        self._callbacks: list[tuple[Callable, Optional[Callable]]] = []

    @classmethod
    def of(cls, value: Any, *, secret: bool = False, resources: Iterable[Any] = ()) -> "Deferred":
        """Create an already resolved Deferred."""
        deferred = cls(secret=secret, resources=resources)
        deferred._resolve(value)
        return deferred

    @classmethod
    def failed(cls, error: Exception, *, resources: Iterable[Any] = ()) -> "Deferred":
        """Create an already failed Deferred."""
        deferred = cls(resources=resources)
        deferred._fail(error)
        return deferred

    @property
    def is_secret(self) -> bool:
        return self._secret

    @property
    def resources(self) -> frozenset:
        return self._resources

    @property
    def is_pending(self) -> bool:
        return self._state == PENDING

    @property
    def is_resolved(self) -> bool:
        return self._state == RESOLVED

    @property
    def is_failed(self) -> bool:
        return self._state == FAILED

    def value(self) -> Any:
        """
        Read the settled value synchronously.

        Raises:
            UnresolvedError: If the Deferred is still pending
            ResolutionFailure: If the Deferred failed
        """
        if self._state == RESOLVED:
            return self._value
        if self._state == FAILED:
            raise self._error
        raise UnresolvedError("Deferred value has not resolved yet")

    def subscribe(self, on_value: Callable[[Any], None], on_error: Optional[Callable] = None) -> None:
        """
        Register continuations for when this Deferred settles.

        Continuations registered on a settled Deferred run immediately.
        """
        if self._state == PENDING:
            self._callbacks.append((on_value, on_error))
            return
        self._dispatch(on_value, on_error)

    def _dispatch(self, on_value: Callable, on_error: Optional[Callable]) -> None:
        if self._state == RESOLVED:
            on_value(self._value)
        elif on_error is not None:
            on_error(self._error)

    def _resolve(self, value: Any, secret: bool = False) -> None:
        self._settle(RESOLVED, value=value, secret=secret)

    def _fail(self, error: Exception) -> None:
        self._settle(FAILED, error=_as_failure(error))

    def _settle(self, state: str, value: Any = None, error: Optional[ResolutionFailure] = None,
                secret: bool = False) -> None:
        if self._state != PENDING:
            raise LazystackError(f"Deferred already settled ({self._state})")
        self._state = state
        self._value = value
        self._error = error
        self._secret = self._secret or secret

        callbacks, self._callbacks = self._callbacks, []
        for on_value, on_error in callbacks:
            self._dispatch(on_value, on_error)

    def _add_resources(self, resources: Iterable[Any]) -> None:
        self._resources = self._resources | frozenset(resources)

    def apply(self, fn: Callable[[Any], Any]) -> "Deferred":
        """
        Derive a new Deferred by running fn on the resolved value.

        fn runs at most once, and never if this Deferred never resolves.
        If fn returns a Deferred, the result is flattened into it.
        """
        result = Deferred(secret=self._secret, resources=self._resources)

        def on_value(value):
            result._add_resources(self._resources)
            try:
                out = fn(value)
            except Exception as exc:
                logger.debug(f"apply callback failed: {exc!r}")
                result._fail(exc)
                return

            if isinstance(out, Deferred):
                result._add_resources(out.resources)
                out.subscribe(
                    lambda inner: result._resolve(inner, secret=self._secret or out.is_secret),
                    result._fail,
                )
            else:
                result._resolve(out, secret=self._secret)

        self.subscribe(on_value, result._fail)
        return result

    def __getitem__(self, key: Any) -> "Deferred":
        return self.apply(lambda value: value[key])

    def __iter__(self) -> Iterator:
        # __getitem__ would otherwise make every Deferred look iterable
        raise TypeError("Deferred is not iterable; use apply() to reach the value")

    def __repr__(self) -> str:
        if self._state == RESOLVED:
            shown = "[secret]" if self._secret else repr(self._value)
            return f"Deferred(resolved={shown})"
        if self._state == FAILED:
            return f"Deferred(failed={self._error!r})"
        return "Deferred(pending)"


def transform(value: Any, fn: Callable[[Any], Any]) -> Deferred:
    """Run fn on a (possibly deferred) value once it resolves."""
    return lift(value).apply(fn)


def join(values: Iterable[Any]) -> Deferred:
    """
    Combine an ordered group of values into one Deferred tuple.

    Resolves only after every input resolves, preserving input order.
    Plain values are treated as already resolved. The first failure
    fails the result; no partial tuple is ever observable.
    """
    items = [lift(value) for value in values]
    result = Deferred(
        secret=any(item.is_secret for item in items),
        resources=frozenset().union(*(item.resources for item in items)),
    )
    if not items:
        result._resolve(())
        return result

    slots: list[Any] = [None] * len(items)
    remaining = len(items)

    def make_on_value(index: int):
        def on_value(value):
            nonlocal remaining
            if not result.is_pending:
                return
            slots[index] = value
            remaining -= 1
            if remaining == 0:
                result._add_resources(frozenset().union(*(item.resources for item in items)))
                result._resolve(tuple(slots), secret=any(item.is_secret for item in items))
        return on_value

    def on_error(error):
        if result.is_pending:
            result._fail(error)

    for index, item in enumerate(items):
        item.subscribe(make_on_value(index), on_error)
    return result


def bind(bindings, body: Callable[..., Any]) -> Deferred:
    """
    Evaluate body with named values once all of them are available.

    Args:
        bindings: Ordered mapping or sequence of (name, value) pairs.
            Values may be Deferreds or plain values.
        body: Called with each name bound as a keyword argument

    Returns:
        Deferred wrapping the body's result

    Example:
        total = bind([("a", size_a), ("b", size_b)], lambda a, b: a + b)
    """
    pairs = list(bindings.items()) if isinstance(bindings, Mapping) else list(bindings)
    names = [name for name, _ in pairs]
    return join(value for _, value in pairs).apply(
        lambda values: body(**dict(zip(names, values)))
    )


def stringify(*parts: Any) -> Deferred:
    """Concatenate literal and deferred parts into one deferred string."""
    return join(parts).apply(lambda values: "".join(str(value) for value in values))


def _collect(value: Any, found: list) -> None:
    if isinstance(value, Deferred):
        found.append(value)
    elif isinstance(value, Mapping):
        for item in value.values():
            _collect(item, found)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _collect(item, found)


def _rebuild(value: Any, resolved: Iterator) -> Any:
    if isinstance(value, Deferred):
        return next(resolved)
    if isinstance(value, Mapping):
        return {key: _rebuild(item, resolved) for key, item in value.items()}
    if isinstance(value, list):
        return [_rebuild(item, resolved) for item in value]
    if isinstance(value, tuple):
        return tuple(_rebuild(item, resolved) for item in value)
    return value


def lift(value: Any) -> Deferred:
    """
    Turn any value into a Deferred.

    Deferreds are returned unchanged. Dicts, lists and tuples that contain
    Deferreds (at any depth) become one Deferred of the plain structure.
    Anything else becomes an already resolved Deferred.
    """
    if isinstance(value, Deferred):
        return value

    found: list[Deferred] = []
    _collect(value, found)
    if not found:
        return Deferred.of(value)

    # resolved values may themselves carry Deferreds; lift again until plain
    return join(found).apply(lambda resolved: lift(_rebuild(value, iter(resolved))))


def secret(value: Any) -> Deferred:
    """Wrap a value as a secret Deferred."""
    result = lift(value).apply(lambda plain: plain)
    result._secret = True
    return result
