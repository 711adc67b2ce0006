"""Tests for lazystack error classes.

Tests cover:
- Error hierarchy
- Messages naming the offending key
"""

import pytest
from lazystack.errors import (
    LazystackError,
    ConfigValidationError,
    MissingConfigError,
    ConfigTypeError,
    ResolutionFailure,
    UnresolvedError,
)


class TestLazystackError:
    """Tests for base LazystackError."""

    def test_is_exception(self):
        """LazystackError should be an Exception."""
        assert issubclass(LazystackError, Exception)

    def test_has_message(self):
        """LazystackError should have a message."""
        error = LazystackError("my message")
        assert str(error) == "my message"

    @pytest.mark.parametrize("error_cls", [
        ConfigValidationError, MissingConfigError, ConfigTypeError, ResolutionFailure, UnresolvedError,
    ])
    def test_subclasses(self, error_cls):
        """Every library error can be caught as LazystackError."""
        assert issubclass(error_cls, LazystackError)


class TestMissingConfigError:
    """Tests for MissingConfigError."""

    def test_names_key(self):
        """The fully-qualified key is kept and shown."""
        error = MissingConfigError("ns:key")
        assert error.key == "ns:key"
        assert "ns:key" in str(error)

    def test_can_be_raised(self):
        with pytest.raises(MissingConfigError, match="gcp:project"):
            raise MissingConfigError("gcp:project")


class TestConfigTypeError:
    """Tests for ConfigTypeError."""

    def test_message(self):
        error = ConfigTypeError("proj:replicas", "number", "many")
        assert error.key == "proj:replicas"
        assert error.expected == "number"
        assert "'many'" in str(error)
        assert "number" in str(error)
