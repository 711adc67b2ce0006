"""
Stack context - the explicit owner of per-program state.

A StackContext bundles the project and stack names, the engine that
settles resources and the ConfigRegistry that caches config sources.
Declaration primitives take an optional context= argument and otherwise
use the current context.

The current context is set via set_context() at CLI entry before the
program runs. When nothing was set, get_context() builds one from the
environment:
- LAZYSTACK_PROJECT: project name (default "project")
- LAZYSTACK_STACK: stack name (default "dev")
- LAZYSTACK_DRY_RUN: "1"/"true"/"yes" enables preview mode
- LAZYSTACK_CONFIG: JSON object of "ns:key" config values
"""

import logging
import os
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional

from .config import ConfigRegistry, load_config_values
from .engine import Engine, LocalEngine

logger = logging.getLogger(__name__)


DEFAULT_PROJECT = "project"
DEFAULT_STACK = "dev"


class StackContext:
    """Project/stack identity plus the engine and config registry."""

    def __init__(
        self,
        project: str = DEFAULT_PROJECT,
        stack: str = DEFAULT_STACK,
        *,
        engine: Optional[Engine] = None,
        config: Optional[ConfigRegistry] = None,
        config_values: Optional[Mapping[str, Any]] = None,
        dry_run: bool = False,
    ):
        self.project = project
        self.stack = stack
        self.engine = engine or LocalEngine(project, stack, dry_run=dry_run)
        self.config = config or ConfigRegistry(project, config_values)

    @property
    def dry_run(self) -> bool:
        return self.engine.dry_run

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, **overrides: Any) -> "StackContext":
        """Build a context from LAZYSTACK_* environment variables."""
        env = os.environ if env is None else env
        project = overrides.pop("project", None) or env.get("LAZYSTACK_PROJECT", DEFAULT_PROJECT)
        stack = overrides.pop("stack", None) or env.get("LAZYSTACK_STACK", DEFAULT_STACK)
        dry_run = overrides.pop("dry_run", None)
        if dry_run is None:
            dry_run = env.get("LAZYSTACK_DRY_RUN", "").strip().lower() in ("1", "true", "yes")
        config_file = overrides.pop("config_file", None)
        values = load_config_values(stack, config_file, env)
        return cls(project, stack, config_values=values, dry_run=dry_run, **overrides)

    def __repr__(self) -> str:
        return f"StackContext(project={self.project}, stack={self.stack}, dry_run={self.dry_run})"


_CURRENT: Optional[StackContext] = None


def get_context() -> StackContext:
    """Return the current context, building one from the environment if needed."""
    global _CURRENT
    if _CURRENT is None:
        _CURRENT = StackContext.from_env()
        logger.debug(f"Created default {_CURRENT!r}")
    return _CURRENT


def set_context(context: StackContext) -> None:
    """Make context the current one."""
    global _CURRENT
    _CURRENT = context


def reset_context() -> None:
    """Drop the current context (tests)."""
    global _CURRENT
    _CURRENT = None


@contextmanager
def use_context(context: StackContext) -> Iterator[StackContext]:
    """Temporarily make context the current one."""
    global _CURRENT
    previous = _CURRENT
    _CURRENT = context
    try:
        yield context
    finally:
        _CURRENT = previous
