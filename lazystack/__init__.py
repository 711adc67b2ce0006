"""
lazystack - declare infrastructure resources whose values arrive later

Programs create resources, compose their deferred fields and return
sanitized outputs. A local engine settles everything in-process.
"""

__version__ = "0.1.0"
__author__ = "lazystack developers"


__all__ = [
    "Deferred", "transform", "join", "bind", "stringify", "lift", "secret",
    "Key", "to_external", "from_external",
    "Resource", "ResourceOptions", "create_resource", "declare", "group", "invoke", "output_map",
    "get_config", "REQUIRED",
    "sanitize", "to_json", "pretty",
    "StackContext", "get_context", "set_context", "reset_context", "use_context",
    "LazystackError", "ConfigValidationError", "MissingConfigError", "ConfigTypeError",
    "ResolutionFailure", "UnresolvedError",
]

from .deferred import Deferred, transform, join, bind, stringify, lift, secret
from .convert import Key, to_external, from_external
from .resource import Resource, ResourceOptions, create_resource, declare, group, invoke, output_map
from .config import get_config, REQUIRED
from .sanitize import sanitize, to_json, pretty
from .context import StackContext, get_context, set_context, reset_context, use_context
from .errors import (
    LazystackError,
    ConfigValidationError,
    MissingConfigError,
    ConfigTypeError,
    ResolutionFailure,
    UnresolvedError,
)
