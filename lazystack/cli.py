"""
CLI interface for lazystack.

Loads a program file, calls its outputs() function, sanitizes the result,
lets the local engine settle every resource and prints the outputs as
JSON on stdout. Progress and logs go to stderr.

A program is a plain Python file:

    from lazystack import declare
    from lazystack.providers import RandomId

    user_id = declare("user_id", RandomId, {"byte_length": 32})

    def outputs():
        return {"user_id": user_id.id}
"""


import importlib.util
import json
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv

from lazystack import __version__


def _common_options(fn):
    fn = click.option("--stack", envvar="LAZYSTACK_STACK", default="dev", show_default=True,
                      help="Stack name")(fn)
    fn = click.option("--project", envvar="LAZYSTACK_PROJECT", default="project", show_default=True,
                      help="Project name (default config namespace)")(fn)
    fn = click.option("--config-file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
                      help="Stack file with a config: mapping (default Lazystack.<stack>.yaml)")(fn)
    return fn


def _build_context(stack: str, project: str, config_file, dry_run: bool = False):
    from lazystack.context import StackContext

    return StackContext.from_env(project=project, stack=stack, config_file=config_file, dry_run=dry_run)


def _load_program(path: Path):
    """Import a program file as a module."""
    spec = importlib.util.spec_from_file_location(f"lazystack_program_{path.stem}", path)
    if spec is None or spec.loader is None:
        raise click.UsageError(f"Cannot load program: {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@click.group()
@click.version_option(version=__version__, prog_name="lazystack")
@click.option("--log-level", default="INFO", show_default=True,
              type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@click.option("--log-format", default="pretty", show_default=True,
              type=click.Choice(["pretty", "structured"]))
@click.option("--log-file", type=click.Path(dir_okay=False, path_type=Path),
              help="Also write structured logs to this file")
def main(log_level: str, log_format: str, log_file: Optional[Path]):
    """
    lazystack - declare resources, compose deferred values, print outputs.
    """
    from lazystack.utils import setup_logging

    load_dotenv()
    setup_logging(log_level, log_format, log_file)


def _echo_failures(engine) -> None:
    for urn, error in engine.failed.items():
        click.echo(f"✗ {urn}: {error}", err=True)


def _run_program_impl(program: Path, *, dry_run: bool, stack: str, project: str, config_file,
                      show_secrets: bool) -> None:
    """Run a program against a fresh local engine and print its outputs."""
    from lazystack.context import reset_context, set_context
    from lazystack.errors import LazystackError
    from lazystack.sanitize import sanitize, snapshot

    if dry_run:
        click.echo("=" * 50, err=True)
        click.echo("=== PREVIEW === (no resources created)", err=True)
        click.echo("=" * 50, err=True)

    try:
        context = _build_context(stack, project, config_file, dry_run=dry_run)
    except (LazystackError, FileNotFoundError) as e:
        click.echo(f"✗ Config not loaded: {e}", err=True)
        raise SystemExit(1)

    set_context(context)
    try:
        module = _load_program(program)
        outputs_fn = getattr(module, "outputs", None)
        if not callable(outputs_fn):
            click.echo(f"✗ {program} does not define outputs()", err=True)
            raise SystemExit(1)

        result = sanitize(outputs_fn())
        context.engine.run()
        shown = snapshot(result, reveal_secrets=show_secrets)
    except LazystackError as e:
        _echo_failures(context.engine)
        click.echo(f"✗ {program.name} failed: {e}", err=True)
        raise SystemExit(1)
    finally:
        reset_context()

    engine = context.engine
    if engine.failed:
        _echo_failures(engine)
        click.echo(f"✗ {program.name} failed: {len(engine.failed)} resource(s) not created", err=True)
        raise SystemExit(1)

    click.echo(json.dumps(shown, indent=2, sort_keys=True, default=str))
    if dry_run:
        click.echo(f"\n[PREVIEW] {len(engine.resources)} resources planned", err=True)
    else:
        click.echo(f"✓ {len(engine.created)} resources created", err=True)


@main.command("up")
@click.argument("program", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@_common_options
@click.option("--show-secrets", is_flag=True, help="Print secret outputs in plaintext")
def up(program: Path, stack: str, project: str, config_file, show_secrets: bool):
    """
    Create the resources of PROGRAM and print its outputs.

    Examples:

        lazystack up stack.py

        lazystack up stack.py --stack prod --config-file Lazystack.prod.yaml
    """
    _run_program_impl(program, dry_run=False, stack=stack, project=project,
                      config_file=config_file, show_secrets=show_secrets)


@main.command("preview")
@click.argument("program", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@_common_options
def preview(program: Path, stack: str, project: str, config_file):
    """
    Plan the resources of PROGRAM without creating them.

    Ids and outputs are shown as [unknown].
    """
    _run_program_impl(program, dry_run=True, stack=stack, project=project,
                      config_file=config_file, show_secrets=False)


@main.group("config")
def config_group():
    """Inspect stack configuration."""
    pass


@config_group.command("get")
@click.argument("key")
@click.option("--type", "value_type", default="string", show_default=True,
              type=click.Choice(["string", "number", "boolean", "object", "secret"]))
@_common_options
@click.option("--show-secrets", is_flag=True, help="Print secret values in plaintext")
def config_get(key: str, value_type: str, stack: str, project: str, config_file, show_secrets: bool):
    """
    Print one configuration value.

    KEY is "namespace:key" or "key" (project namespace).

    Examples:

        lazystack config get region

        lazystack config get gcp:project

        lazystack config get replicas --type number
    """
    from lazystack.config import get_config
    from lazystack.errors import LazystackError
    from lazystack.sanitize import snapshot

    try:
        context = _build_context(stack, project, config_file)
        value = get_config(key, value_type, context=context)
    except (LazystackError, FileNotFoundError) as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)

    click.echo(json.dumps(snapshot(value, reveal_secrets=show_secrets), default=str))


if __name__ == "__main__":
    main()
