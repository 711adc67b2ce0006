"""
Configuration access for lazystack programs.

Configuration values are flat "namespace:key" entries, read from a stack
file and the environment:

    # Lazystack.dev.yaml
    config:
      myproject:region: eu-west-1
      myproject:replicas: "3"
      gcp:project: my-gcp-project
      myproject:db_password:
        secure: hunter2

Values given as {secure: ...} are secrets. They are stored in plaintext
locally; reading them yields a secret Deferred.

Sources are memoized per namespace by a ConfigRegistry owned by the
stack context, so each namespace is materialized at most once.
"""

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, Optional, Union

import yaml

from .convert import Key, from_external
from .deferred import Deferred
from .errors import ConfigTypeError, ConfigValidationError, MissingConfigError

logger = logging.getLogger(__name__)


CONFIG_ENV_VAR = "LAZYSTACK_CONFIG"
STACK_FILE_TEMPLATE = "Lazystack.{stack}.yaml"

# Cache key for the project's own namespace
DEFAULT_NAMESPACE = "<default>"


class _Required:
    def __repr__(self) -> str:
        return "REQUIRED"


REQUIRED = _Required()


def _is_secure(value: Any) -> bool:
    return isinstance(value, Mapping) and set(value) == {"secure"}


class ConfigSource:
    """
    Typed accessors for one configuration namespace.

    get_* methods return None for absent keys; require_* methods raise
    MissingConfigError naming the fully-qualified key.
    """

    def __init__(self, namespace: str, values: Mapping[str, Any]):
        self.namespace = namespace
        self._values = values

    def full_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _raw(self, key: str) -> tuple[Any, bool]:
        value = self._values.get(self.full_key(key))
        if _is_secure(value):
            return value["secure"], True
        return value, False

    def _require(self, key: str, getter: Callable[[str], Any]) -> Any:
        value = getter(key)
        if value is None:
            raise MissingConfigError(self.full_key(key))
        return value

    def get(self, key: str) -> Optional[str]:
        value, secure = self._raw(key)
        if value is None:
            return None
        if secure:
            logger.warning(f"Reading secret '{self.full_key(key)}' as plaintext; use the secret type")
        if isinstance(value, str):
            return value
        if isinstance(value, (Mapping, list)):
            return json.dumps(value)
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)

    def get_number(self, key: str) -> Union[int, float, None]:
        value, _ = self._raw(key)
        if value is None:
            return None
        if isinstance(value, bool):
            raise ConfigTypeError(self.full_key(key), "number", value)
        if isinstance(value, (int, float)):
            return value
        if isinstance(value, str):
            text = value.strip()
            try:
                return int(text)
            except ValueError:
                pass
            try:
                return float(text)
            except ValueError:
                pass
        raise ConfigTypeError(self.full_key(key), "number", value)

    def get_boolean(self, key: str) -> Optional[bool]:
        value, _ = self._raw(key)
        if value is None:
            return None
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise ConfigTypeError(self.full_key(key), "boolean", value)

    def get_object(self, key: str) -> Any:
        value, _ = self._raw(key)
        if value is None:
            return None
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except json.JSONDecodeError:
                raise ConfigTypeError(self.full_key(key), "object", value)
        if not isinstance(value, (Mapping, list)):
            raise ConfigTypeError(self.full_key(key), "object", value)
        return value

    def get_secret(self, key: str) -> Optional[Deferred]:
        value, _ = self._raw(key)
        if value is None:
            return None
        return Deferred.of(value if isinstance(value, str) else str(value), secret=True)

    def require(self, key: str) -> str:
        return self._require(key, self.get)

    def require_number(self, key: str) -> Union[int, float]:
        return self._require(key, self.get_number)

    def require_boolean(self, key: str) -> bool:
        return self._require(key, self.get_boolean)

    def require_object(self, key: str) -> Any:
        return self._require(key, self.get_object)

    def require_secret(self, key: str) -> Deferred:
        return self._require(key, self.get_secret)

    def __repr__(self) -> str:
        return f"ConfigSource(namespace={self.namespace})"


# value type -> (getter, requirer) on ConfigSource
CONFIG_TYPES = {
    "string": ("get", "require"),
    "number": ("get_number", "require_number"),
    "boolean": ("get_boolean", "require_boolean"),
    "object": ("get_object", "require_object"),
    "secret": ("get_secret", "require_secret"),
}


class ConfigRegistry:
    """
    Owner of the configuration sources of one stack context.

    Sources are built lazily, once per namespace, and never invalidated.
    Building a source is idempotent, so a repeated build is harmless.
    """

    def __init__(
        self,
        project: str,
        values: Optional[Mapping[str, Any]] = None,
        *,
        source_factory: Callable[[str, Mapping[str, Any]], ConfigSource] = ConfigSource,
    ):
        self.project = project
        self._values = dict(values or {})
        self._source_factory = source_factory
        self._sources: dict[str, ConfigSource] = {}

    @property
    def values(self) -> dict[str, Any]:
        return dict(self._values)

    def source(self, namespace: Optional[str] = None) -> ConfigSource:
        """Get the cached source for a namespace (None means the project)."""
        cache_key = namespace or DEFAULT_NAMESPACE
        source = self._sources.get(cache_key)
        if source is None:
            source = self._source_factory(namespace or self.project, self._values)
            self._sources[cache_key] = source
            logger.debug(f"Loaded config source for namespace {namespace or self.project}")
        return source

    def clear(self) -> None:
        """Forget cached sources."""
        self._sources.clear()


def split_key(key: Union[str, Key]) -> tuple[Optional[str], str]:
    """Split "ns:key" into (namespace, key); plain keys have no namespace."""
    if isinstance(key, Key):
        if key.namespace:
            return key.namespace, key.name
        key = key.name
    namespace, sep, name = key.partition(":")
    if sep:
        return namespace, name
    return None, key


def get_config(key: Union[str, Key], type_: str = "string", default: Any = REQUIRED, *, context=None) -> Any:
    """
    Read one configuration value.

    Args:
        key: "ns:key" or "key" (project namespace)
        type_: One of string, number, boolean, object, secret
        default: Value for an absent key; REQUIRED makes the key mandatory.
            A Deferred default is returned as is without reading.

    Returns:
        The typed value (a secret Deferred for the secret type)

    Raises:
        ConfigValidationError: Unknown type
        MissingConfigError: Required key absent
        ConfigTypeError: Value does not parse as the type
    """
    from .context import get_context

    if type_ not in CONFIG_TYPES:
        raise ConfigValidationError(
            f"Unknown config type '{type_}'. Expected one of: {', '.join(CONFIG_TYPES)}"
        )
    if isinstance(default, Deferred):
        return default

    namespace, name = split_key(key)
    source = (context or get_context()).config.source(namespace)
    get_name, require_name = CONFIG_TYPES[type_]

    if default is REQUIRED:
        value = getattr(source, require_name)(name)
    else:
        value = getattr(source, get_name)(name)

    # falsy values (False, 0) are real values, only None means absent
    value = value if value is not None else default

    if type_ == "object" and value is not None:
        return from_external(value)
    return value


def load_stack_config(path: Union[str, Path]) -> dict[str, Any]:
    """
    Load the config: mapping of a stack file.

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigValidationError: If the YAML is invalid or malformed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"lazystack stack file not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML syntax in {path}: {e}")

    if not isinstance(data, Mapping):
        raise ConfigValidationError(f"Stack file {path} must contain a mapping")
    config = data.get("config") or {}
    if not isinstance(config, Mapping):
        raise ConfigValidationError(f"'config' in {path} must be a mapping")
    return {str(k): v for k, v in config.items()}


def config_from_env(env: Optional[Mapping[str, str]] = None) -> dict[str, Any]:
    """
    Parse the LAZYSTACK_CONFIG environment variable (a JSON object).

    Raises:
        ConfigValidationError: If the variable is not a JSON object
    """
    env = os.environ if env is None else env
    raw = env.get(CONFIG_ENV_VAR)
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigValidationError(f"{CONFIG_ENV_VAR} is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise ConfigValidationError(f"{CONFIG_ENV_VAR} must be a JSON object")
    return data


def load_config_values(stack: str, config_file: Optional[Union[str, Path]] = None,
                       env: Optional[Mapping[str, str]] = None) -> dict[str, Any]:
    """
    Merge stack-file values with LAZYSTACK_CONFIG (environment wins).

    Without an explicit config_file, Lazystack.<stack>.yaml in the current
    directory is used when it exists.
    """
    values: dict[str, Any] = {}
    if config_file is not None:
        values.update(load_stack_config(config_file))
    else:
        default_path = Path.cwd() / STACK_FILE_TEMPLATE.format(stack=stack)
        if default_path.exists():
            values.update(load_stack_config(default_path))
    values.update(config_from_env(env))
    return values
