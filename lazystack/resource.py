"""
Resource construction facade.

Resources are declared with create_resource() (or declare(), which derives
the logical name from a short identifier). Construction returns a
Resource handle immediately; its fields are Deferreds that the engine
settles once the resource has been created.

    bucket = create_resource("gcp:storage/bucket:Bucket", "assets", {"location": "EU"})
    site = create_resource(
        "gcp:compute/instance:Instance",
        "web",
        {"metadata": {"bucket": bucket.output("name")}},
        ResourceOptions(depends_on=[bucket]),
    )

Every Deferred derived from a resource's fields carries that resource in
its dependency set, which is how the engine orders creation.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .convert import key_name, to_external
from .deferred import Deferred, join, lift
from .errors import ConfigValidationError

logger = logging.getLogger(__name__)


@dataclass
class ResourceOptions:
    """
    Lifecycle directives for a resource.

    Attributes:
        parent: Resource this one is nested under (changes its urn)
        depends_on: Resources that must be created first
        provider: Provider instance overriding the package default
        protect: Refuse deletion of the resource
        ignore_changes: Input names to ignore when diffing
        aliases: Previous urns of the resource
        delete_before_replace: Delete before creating the replacement
        additional_secret_outputs: Output names to mark secret
    """
    parent: Optional["Resource"] = None
    depends_on: list["Resource"] = field(default_factory=list)
    provider: Any = None
    protect: bool = False
    ignore_changes: list[str] = field(default_factory=list)
    aliases: list[str] = field(default_factory=list)
    delete_before_replace: bool = False
    additional_secret_outputs: list[str] = field(default_factory=list)

    _ALIASES = {
        "dependsOn": "depends_on",
        "ignoreChanges": "ignore_changes",
        "deleteBeforeReplace": "delete_before_replace",
        "additionalSecretOutputs": "additional_secret_outputs",
    }

    def __post_init__(self):
        if self.parent is not None and not isinstance(self.parent, Resource):
            raise ConfigValidationError(f"parent must be a Resource, got {type(self.parent).__name__}")
        if isinstance(self.depends_on, Resource):
            self.depends_on = [self.depends_on]
        if not isinstance(self.depends_on, (list, tuple)):
            raise ConfigValidationError(
                f"depends_on must be a list of Resources, got {type(self.depends_on).__name__}"
            )
        for dep in self.depends_on:
            if not isinstance(dep, Resource):
                raise ConfigValidationError(f"depends_on entries must be Resources, got {type(dep).__name__}")
        self.depends_on = list(self.depends_on)

    @classmethod
    def from_dict(cls, data: Mapping) -> "ResourceOptions":
        """
        Build options from a mapping with snake_case or camelCase keys.

        Raises:
            ConfigValidationError: If a key is not a known option
        """
        known = set(cls.__dataclass_fields__)
        kwargs = {}
        for raw_key, value in data.items():
            key = key_name(raw_key)
            key = cls._ALIASES.get(key, key)
            if key not in known:
                raise ConfigValidationError(f"Unknown resource option: {raw_key}")
            kwargs[key] = value
        if kwargs.get("depends_on") is None:
            kwargs.pop("depends_on", None)
        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "parent": self.parent,
            "depends_on": list(self.depends_on),
            "provider": self.provider,
            "protect": self.protect,
            "ignore_changes": list(self.ignore_changes),
            "aliases": list(self.aliases),
            "delete_before_replace": self.delete_before_replace,
            "additional_secret_outputs": list(self.additional_secret_outputs),
        }


def _require_mapping(value: Any, what: str) -> Mapping:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigValidationError(f"{what} must be a mapping, got {type(value).__name__}")
    return value


class Resource:
    """
    Handle for a declared resource.

    Identity fields urn and id are Deferreds. Other outputs are reached
    with output(name), resource[name] or attribute access.

    Attributes:
        type: Provider-qualified type, e.g. "random:index/randomId:RandomId"
        name: Logical name, unique per type within the stack
        inputs: Inputs as declared
        options: ResourceOptions as declared
    """

    type_token: Optional[str] = None

    def __init__(
        self,
        type_: str,
        name: str,
        inputs: Optional[Mapping] = None,
        options: Any = None,
        *,
        context=None,
        component: bool = False,
    ):
        from .context import get_context

        if not isinstance(type_, str) or not type_:
            raise ConfigValidationError(f"Resource type must be a non-empty string, got {type_!r}")
        if not isinstance(name, str) or not name:
            raise ConfigValidationError(f"Resource name must be a non-empty string, got {name!r}")
        inputs = _require_mapping(inputs, "Resource inputs")
        if not isinstance(options, ResourceOptions):
            options = ResourceOptions.from_dict(_require_mapping(options, "Resource options"))

        self.type = type_
        self.name = name
        self.inputs = inputs
        self.options = options
        self.is_component = component
        self.qualified_type = type_
        self.urn_text: Optional[str] = None

        self._state = "pending"
        self._outputs: dict[str, Any] = {}
        self._error: Optional[Exception] = None
        self._secret = False
        self._fields: dict[str, Deferred] = {}
        self.urn = Deferred(resources=[self])
        self.id = Deferred(resources=[self])

        engine = (context or get_context()).engine
        self.urn_text = engine.register_resource(
            self, to_external(dict(inputs)), to_external(options.to_dict())
        )

    def output(self, name: str) -> Deferred:
        """Deferred for a named output field."""
        if name == "urn":
            return self.urn
        if name == "id":
            return self.id

        existing = self._fields.get(name)
        if existing is not None:
            return existing

        deferred = Deferred(
            secret=name in self.options.additional_secret_outputs,
            resources=[self],
        )
        self._fields[name] = deferred
        self._settle_field(name, deferred)
        return deferred

    def _settle_field(self, name: str, deferred: Deferred) -> None:
        if self._state == "created":
            deferred._resolve(self._outputs.get(name), secret=self._secret)
        elif self._state == "failed":
            deferred._fail(self._error)

    def _complete(self, urn: str, resource_id: Optional[str], outputs: dict, *, secret: bool = False) -> None:
        self._state = "created"
        self._outputs = dict(outputs)
        self._secret = secret
        self.urn._resolve(urn)
        self.id._resolve(resource_id)
        for name, deferred in self._fields.items():
            self._settle_field(name, deferred)

    def _preview(self, urn: str) -> None:
        self._state = "preview"
        self.urn._resolve(urn)

    def _abort(self, error: Exception) -> None:
        self._state = "failed"
        self._error = error
        for deferred in (self.urn, self.id, *self._fields.values()):
            if deferred.is_pending:
                deferred._fail(error)

    def __getitem__(self, name: str) -> Deferred:
        return self.output(name)

    def __getattr__(self, name: str) -> Deferred:
        # only reached for names that are not regular attributes
        if name.startswith("_"):
            raise AttributeError(name)
        return self.output(name)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(type={self.type}, name={self.name}, state={self._state})"


def create_resource(type_, name: str, inputs: Optional[Mapping] = None, options: Any = None,
                    *, context=None) -> Resource:
    """
    Create a resource.

    Args:
        type_: Type string, or a Resource subclass with a type_token
        name: Logical name
        inputs: Input mapping, defaults to {}
        options: ResourceOptions or an equivalent mapping, defaults to none

    Returns:
        The Resource handle (fields pending until the engine runs)

    Raises:
        ConfigValidationError: If any argument has the wrong shape
    """
    if isinstance(type_, type) and issubclass(type_, Resource):
        if not type_.type_token:
            raise ConfigValidationError(f"{type_.__name__} has no type_token")
        return type_(type_.type_token, name, inputs, options, context=context)
    return Resource(type_, name, inputs, options, context=context)


def declare(ident: str, type_, inputs: Optional[Mapping] = None, options: Any = None,
            *, name: Optional[str] = None, context=None) -> Resource:
    """
    Create a resource named after a short identifier.

    The logical name defaults to ident with underscores turned into
    dashes, so declare("user_id", RandomId, {...}) creates "user-id".
    """
    if not isinstance(ident, str) or not ident:
        raise ConfigValidationError(f"Resource identifier must be a non-empty string, got {ident!r}")
    return create_resource(type_, name or ident.replace("_", "-"), inputs, options, context=context)


def group(name: str, options: Any = None, *, context=None) -> Resource:
    """Create a component resource grouping other resources via parent=."""
    return Resource(f"group:{name}", name, {}, options, context=context, component=True)


def invoke(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Deferred:
    """
    Call a provider function once its (possibly deferred) arguments resolve.

    Arguments are converted with to_external() first. The result is not
    converted back.
    """
    return join([lift(to_external(list(args))), lift(to_external(kwargs))]).apply(
        lambda resolved: fn(*resolved[0], **resolved[1])
    )


DEFAULT_OUTPUT_KEYS = ("urn", "id")


def output_map(resource: Resource, *keys) -> dict[str, Deferred]:
    """
    Map of identity fields plus extra output names to their Deferreds.

    Keys may be passed individually or as one collection.
    """
    if len(keys) == 1 and isinstance(keys[0], (list, tuple, set, frozenset)):
        keys = tuple(keys[0])
    names = list(DEFAULT_OUTPUT_KEYS)
    for key in keys:
        key = key_name(key)
        if key not in names:
            names.append(key)
    return {key: resource.output(key) for key in names}
