import pytest
from typer.testing import CliRunner

import cli
from reviewbox.client import ReviewClient

from tests.helpers import TODAY

runner = CliRunner()


@pytest.fixture(autouse=True)
def local_client(service, monkeypatch):
    monkeypatch.setattr(cli, "_client", lambda: ReviewClient(service, clock=lambda: TODAY))


def invoke(*args):
    return runner.invoke(cli.app, list(args))


def test_pattern_and_item_flow():
    result = invoke("add-pattern", "--name", "weekly", "--intervals", "1,3,7")
    assert result.exit_code == 0, result.output
    assert "Pattern created! ID: 1" in result.output

    result = invoke("patterns")
    assert "weekly" in result.output

    result = invoke("add-item", "--name", "word", "--learned", "2024-05-10", "--pattern-id", "1")
    assert result.exit_code == 0, result.output
    assert "Review dates: 3" in result.output

    result = invoke("show-item", "1")
    assert result.exit_code == 0, result.output
    assert "2024-05-21" in result.output

    result = invoke("reschedule", "1", "--step", "2", "--to", "2024-05-16")
    assert result.exit_code == 0, result.output
    assert "Step 3: 2024-05-23" in result.output

    result = invoke("complete", "1", "--step", "3")
    assert result.exit_code == 0, result.output

    result = invoke("items")
    assert "word" in result.output


def test_domain_errors_exit_with_code_1():
    invoke("add-pattern", "--name", "weekly", "--intervals", "1,3,7")
    invoke("add-item", "--name", "word", "--learned", "2024-05-10", "--pattern-id", "1")

    result = invoke("reschedule", "1", "--step", "3", "--to", "2024-05-19")

    assert result.exit_code == 1
    assert "✗" in result.output


def test_bad_intervals():
    result = invoke("add-pattern", "--name", "broken", "--intervals", "1,x")
    assert result.exit_code == 1

    result = invoke("add-pattern", "--name", "zero", "--intervals", "1,0")
    assert result.exit_code == 1
    assert "steps" in result.output
