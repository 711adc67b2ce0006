"""Tests for the lazystack CLI."""

import json

import pytest
import yaml
from click.testing import CliRunner

from lazystack import __version__
from lazystack.cli import main


PROGRAM = '''
from lazystack import declare, get_config, stringify
from lazystack.providers import RandomId

user_id = declare("user_id", RandomId, {"byte_length": 32})
other_id = declare("other_id", RandomId, {"byte_length": 16})
region = get_config("region", "string", "eu")


def outputs():
    return {
        "user_id": user_id.id,
        "other_id": other_id,
        "label": stringify(region, "-", user_id.name),
    }
'''

FAILING_PROGRAM = '''
from lazystack import declare
from lazystack.providers import RandomId

broken = declare("broken", RandomId, {"byte_length": 0})


def outputs():
    return {"broken": broken.id}
'''

UNREFERENCED_FAILURE_PROGRAM = '''
from lazystack import create_resource
from lazystack.providers import RandomId

create_resource(RandomId, "bad", {"byte_length": 0})


def outputs():
    return {"ok": 1}
'''


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def program(tmp_path):
    path = tmp_path / "stack.py"
    path.write_text(PROGRAM)
    return path


@pytest.fixture
def stack_file(tmp_path):
    path = tmp_path / "Lazystack.dev.yaml"
    with open(path, "w") as f:
        yaml.dump({"config": {
            "project:region": "us",
            "project:replicas": "3",
            "project:db_password": {"secure": "hunter2"},
        }}, f)
    return path


def test_version(runner):
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_up_prints_sanitized_outputs(runner, program):
    result = runner.invoke(main, ["up", str(program)])
    assert result.exit_code == 0, result.output
    assert '"urn": "urn:lazystack:dev::project::random:index/randomId:RandomId::other-id"' in result.output
    assert '"label": "eu-user-id"' in result.output
    assert "[unknown]" not in result.output
    assert "2 resources created" in result.output


def test_up_reads_stack_file(runner, program, stack_file):
    result = runner.invoke(main, ["up", str(program), "--config-file", str(stack_file)])
    assert result.exit_code == 0, result.output
    assert '"label": "us-user-id"' in result.output


def test_preview_leaves_ids_unknown(runner, program):
    result = runner.invoke(main, ["preview", str(program), "--stack", "staging"])
    assert result.exit_code == 0, result.output
    assert "PREVIEW" in result.output
    assert '"user_id": "[unknown]"' in result.output
    assert "urn:lazystack:staging::project::random:index/randomId:RandomId::other-id" in result.output
    assert "2 resources planned" in result.output


def test_program_without_outputs(runner, tmp_path):
    path = tmp_path / "empty.py"
    path.write_text("x = 1\n")
    result = runner.invoke(main, ["up", str(path)])
    assert result.exit_code == 1
    assert "does not define outputs()" in result.output


def test_failed_resource_exits_nonzero(runner, tmp_path):
    path = tmp_path / "failing.py"
    path.write_text(FAILING_PROGRAM)
    result = runner.invoke(main, ["up", str(path)])
    assert result.exit_code == 1
    assert "failing.py failed" in result.output
    assert "byte_length" in result.output


def test_unreferenced_failure_exits_nonzero(runner, tmp_path):
    path = tmp_path / "orphan.py"
    path.write_text(UNREFERENCED_FAILURE_PROGRAM)
    result = runner.invoke(main, ["up", str(path)])
    assert result.exit_code == 1
    assert "urn:lazystack:dev::project::random:index/randomId:RandomId::bad" in result.output
    assert "1 resource(s) not created" in result.output
    assert "resources created" not in result.output


def test_log_file_records_urns(runner, program, tmp_path):
    log_file = tmp_path / "logs" / "run.jsonl"
    result = runner.invoke(main, ["--log-file", str(log_file), "up", str(program)])
    assert result.exit_code == 0, result.output

    records = [json.loads(line) for line in log_file.read_text().splitlines()]
    created = [r for r in records if r["message"].strip().startswith("created")]
    prefix = "urn:lazystack:dev::project::random:index/randomId:RandomId::"
    assert {r["urn"] for r in created} == {prefix + "user-id", prefix + "other-id"}
    assert all(r["metadata"]["type"] == "random:index/randomId:RandomId" for r in created)


def test_config_get(runner, stack_file):
    result = runner.invoke(main, ["config", "get", "replicas", "--type", "number", "--config-file", str(stack_file)])
    assert result.exit_code == 0, result.output
    assert result.output.strip().endswith("3")


def test_config_get_secret_masked(runner, stack_file):
    args = ["config", "get", "db_password", "--type", "secret", "--config-file", str(stack_file)]
    masked = runner.invoke(main, args)
    assert '"[secret]"' in masked.output
    assert "hunter2" not in masked.output

    revealed = runner.invoke(main, args + ["--show-secrets"])
    assert '"hunter2"' in revealed.output


def test_config_get_missing(runner, stack_file):
    result = runner.invoke(main, ["config", "get", "nope", "--config-file", str(stack_file)])
    assert result.exit_code == 1
    assert "project:nope" in result.output
