"""
Error classes for lazystack.

Errors fall into two groups:
- Synchronous errors: raised immediately while a program declares
  resources or reads configuration (ConfigValidationError,
  MissingConfigError, ConfigTypeError, UnresolvedError). They are never
  caught by the library and terminate evaluation of the program.
- Asynchronous errors: ResolutionFailure is never raised at the call
  site. It settles a Deferred and propagates to every value derived
  from it.

No error is retried at this layer.
"""


class LazystackError(Exception):
    """Base exception for lazystack."""
    pass


class ConfigValidationError(LazystackError):
    """
    Invalid argument passed to a declaration primitive.

    Examples:
    - inputs or options that are not mappings
    - an empty resource type or logical name
    - an unknown configuration value type
    """
    pass


class MissingConfigError(LazystackError):
    """A required configuration key is absent."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Missing required configuration variable '{key}'")


class ConfigTypeError(LazystackError):
    """A configuration value cannot be read as the requested type."""

    def __init__(self, key: str, expected: str, value):
        self.key = key
        self.expected = expected
        super().__init__(
            f"Configuration '{key}' value {value!r} is not a valid {expected}"
        )


class ResolutionFailure(LazystackError):
    """
    An upstream computation behind a Deferred failed.

    Examples:
    - the provider failed to create a resource
    - a function passed to apply() raised

    Delivered through the Deferred to every dependent value.
    """
    pass


class UnresolvedError(LazystackError):
    """A Deferred was read synchronously before it resolved."""
    pass
