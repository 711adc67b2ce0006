"""Tests for lazystack.config.

Tests cover:
- Key splitting and namespace defaults
- Required vs optional reads, falsy defaults
- Typed parsing and type mismatches
- Secret values
- Source memoization per namespace
- Stack file and environment loading
"""

import json
from unittest.mock import MagicMock

import pytest
import yaml

from lazystack.config import (
    REQUIRED,
    ConfigRegistry,
    ConfigSource,
    config_from_env,
    get_config,
    load_config_values,
    load_stack_config,
    split_key,
)
from lazystack.context import StackContext, set_context
from lazystack.convert import Key
from lazystack.deferred import Deferred
from lazystack.errors import ConfigTypeError, ConfigValidationError, MissingConfigError


VALUES = {
    "proj:region": "eu-west-1",
    "proj:replicas": "3",
    "proj:ratio": "0.5",
    "proj:enabled": "true",
    "proj:disabled": False,
    "proj:zero": 0,
    "proj:tags": '{"team": "infra", "cost/center": "42"}',
    "proj:zones": ["a", "b"],
    "proj:db_password": {"secure": "hunter2"},
    "gcp:project": "my-gcp-project",
    "ns:key": "7",
}


@pytest.fixture
def configured():
    ctx = StackContext(project="proj", config_values=VALUES)
    set_context(ctx)
    return ctx


def _write_yaml(path, data):
    with open(path, "w") as f:
        yaml.dump(data, f)


class TestSplitKey:
    """Tests for split_key()."""

    @pytest.mark.parametrize("key,expected", [
        ("gcp:project", ("gcp", "project")),
        ("region", (None, "region")),
        (Key("gcp", "project"), ("gcp", "project")),
        (Key(None, "region"), (None, "region")),
        (Key(None, "gcp:project"), ("gcp", "project")),
    ])
    def test_split(self, key, expected):
        assert split_key(key) == expected


class TestGetConfig:
    """Tests for get_config()."""

    def test_default_namespace(self, configured):
        assert get_config("region") == "eu-west-1"

    def test_explicit_namespace(self, configured):
        assert get_config("gcp:project") == "my-gcp-project"

    def test_missing_required_names_key(self, configured):
        with pytest.raises(MissingConfigError) as excinfo:
            get_config("ns:missing", "number")
        assert excinfo.value.key == "ns:missing"

    def test_missing_required_in_project_namespace(self, configured):
        with pytest.raises(MissingConfigError, match="proj:nothing"):
            get_config("nothing")

    def test_missing_with_default(self, configured):
        assert get_config("ns:missing", "number", 0) == 0
        assert get_config("nothing", "string", None) is None

    def test_absent_ns_key_required_then_default(self):
        set_context(StackContext(project="proj"))
        with pytest.raises(MissingConfigError, match="ns:key"):
            get_config("ns:key", "number", REQUIRED)
        assert get_config("ns:key", "number", 0) == 0

    def test_falsy_values_are_kept(self, configured):
        assert get_config("disabled", "boolean", True) is False
        assert get_config("zero", "number", 5) == 0

    def test_number(self, configured):
        assert get_config("replicas", "number") == 3
        assert get_config("ratio", "number") == 0.5
        assert get_config("ns:key", "number") == 7

    def test_boolean(self, configured):
        assert get_config("enabled", "boolean") is True

    def test_object(self, configured):
        assert get_config("tags", "object") == {"team": "infra", "cost/center": "42"}
        assert get_config("zones", "object") == ["a", "b"]

    def test_type_mismatch(self, configured):
        with pytest.raises(ConfigTypeError, match="proj:region"):
            get_config("region", "number")
        with pytest.raises(ConfigTypeError):
            get_config("region", "boolean")
        with pytest.raises(ConfigTypeError):
            get_config("region", "object")

    def test_unknown_type(self, configured):
        with pytest.raises(ConfigValidationError, match="Unknown config type"):
            get_config("region", "date")

    def test_secret(self, configured):
        value = get_config("db_password", "secret")
        assert isinstance(value, Deferred)
        assert value.is_secret
        assert value.value() == "hunter2"

    def test_plain_value_read_as_secret(self, configured):
        assert get_config("region", "secret").is_secret

    def test_deferred_default_returned_verbatim(self, configured):
        default = Deferred.of("fallback", secret=True)
        assert get_config("nothing", "secret", default) is default

    def test_string_from_structured(self, configured):
        assert json.loads(get_config("zones")) == ["a", "b"]
        assert get_config("disabled", "string") == "false"

    def test_explicit_context(self):
        ctx = StackContext(project="other", config_values={"other:region": "us"})
        assert get_config("region", context=ctx) == "us"


class TestConfigRegistry:
    """Tests for per-namespace source memoization."""

    def test_same_namespace_same_source(self):
        registry = ConfigRegistry("proj", VALUES)
        assert registry.source("gcp") is registry.source("gcp")
        assert registry.source() is registry.source(None)

    def test_source_built_once(self):
        factory = MagicMock(side_effect=ConfigSource)
        registry = ConfigRegistry("proj", VALUES, source_factory=factory)

        first = registry.source("gcp")
        second = registry.source("gcp")

        factory.assert_called_once_with("gcp", VALUES)
        assert first is second
        assert first.require("project") == second.require("project") == "my-gcp-project"

    def test_default_namespace_is_project(self):
        factory = MagicMock(side_effect=ConfigSource)
        registry = ConfigRegistry("proj", VALUES, source_factory=factory)
        assert registry.source().namespace == "proj"
        registry.source()
        factory.assert_called_once()

    def test_get_config_uses_registry_cache(self):
        factory = MagicMock(side_effect=ConfigSource)
        ctx = StackContext(project="proj", config=ConfigRegistry("proj", VALUES, source_factory=factory))
        get_config("gcp:project", context=ctx)
        get_config("gcp:project", context=ctx)
        assert factory.call_count == 1

    def test_clear(self):
        registry = ConfigRegistry("proj", VALUES)
        first = registry.source("gcp")
        registry.clear()
        assert registry.source("gcp") is not first


class TestLoading:
    """Tests for stack file and environment loading."""

    def test_load_stack_config(self, tmp_path):
        path = tmp_path / "Lazystack.dev.yaml"
        _write_yaml(path, {"config": {"proj:region": "eu", "proj:pw": {"secure": "x"}}})
        assert load_stack_config(path) == {"proj:region": "eu", "proj:pw": {"secure": "x"}}

    def test_load_stack_config_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="stack file not found"):
            load_stack_config(tmp_path / "nope.yaml")

    def test_load_stack_config_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("config: [unclosed")
        with pytest.raises(ConfigValidationError, match="Invalid YAML"):
            load_stack_config(path)

    def test_load_stack_config_not_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("config:\n  - a\n")
        with pytest.raises(ConfigValidationError, match="must be a mapping"):
            load_stack_config(path)

    def test_config_from_env(self):
        env = {"LAZYSTACK_CONFIG": '{"proj:region": "us"}'}
        assert config_from_env(env) == {"proj:region": "us"}
        assert config_from_env({}) == {}

    def test_config_from_env_invalid(self):
        with pytest.raises(ConfigValidationError):
            config_from_env({"LAZYSTACK_CONFIG": "[1, 2]"})
        with pytest.raises(ConfigValidationError):
            config_from_env({"LAZYSTACK_CONFIG": "{nope"})

    def test_env_wins_over_file(self, tmp_path):
        path = tmp_path / "stack.yaml"
        _write_yaml(path, {"config": {"proj:region": "eu", "proj:size": "1"}})
        env = {"LAZYSTACK_CONFIG": '{"proj:region": "us"}'}
        assert load_config_values("dev", path, env) == {"proj:region": "us", "proj:size": "1"}

    def test_default_stack_file_in_cwd(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        _write_yaml(tmp_path / "Lazystack.prod.yaml", {"config": {"proj:region": "ap"}})
        assert load_config_values("prod", env={}) == {"proj:region": "ap"}
        assert load_config_values("dev", env={}) == {}

    def test_context_from_env(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        env = {
            "LAZYSTACK_PROJECT": "shop",
            "LAZYSTACK_STACK": "staging",
            "LAZYSTACK_DRY_RUN": "true",
            "LAZYSTACK_CONFIG": '{"shop:region": "eu"}',
        }
        ctx = StackContext.from_env(env)
        assert (ctx.project, ctx.stack, ctx.dry_run) == ("shop", "staging", True)
        assert get_config("region", context=ctx) == "eu"
