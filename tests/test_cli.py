"""Tests for the alertengine command line."""
import pytest
import yaml
from click.testing import CliRunner

from main import cli
from __version__ import __version__

RULES = {"rules": [{
    "name": "cpu_high",
    "metric": "cpu",
    "condition": {"operator": ">", "threshold": 90, "duration": "5m"},
    "severity": "critical",
    "labels": {"service": "api"},
    "annotations": {"summary": "CPU above 90%"},
}]}


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def rules_file(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text(yaml.safe_dump(RULES))
    return str(path)


@pytest.fixture
def static_config(tmp_path, rules_file):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({
        "rules": {"path": rules_file},
        "metrics": {"source": "static", "static": {"cpu": 20}},
        "logging": {"level": "WARNING"},
    }))
    return str(path)


def test_help(runner):
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    for command in ("run", "check", "rules", "replay", "channels"):
        assert command in result.output


def test_version(runner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_rules_validate_bundled(runner):
    result = runner.invoke(cli, ["rules", "validate"])
    assert result.exit_code == 0
    assert "rules OK" in result.output


def test_rules_validate_invalid(runner, tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text(yaml.safe_dump({"rules": [{"name": "x", "metric": "m",
                                                "condition": {"operator": "~", "threshold": 1}}]}))
    result = runner.invoke(cli, ["rules", "validate", str(path)])
    assert result.exit_code == 1
    assert "invalid operator" in result.output


def test_rules_list(runner, static_config):
    result = runner.invoke(cli, ["--config", static_config, "rules", "list"])
    assert result.exit_code == 0
    assert "cpu_high" in result.output


def test_bad_config_exits(runner, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"throttle": {"max_count": 0}}))
    result = runner.invoke(cli, ["--config", str(path), "check"])
    assert result.exit_code == 2
    assert "Configuration error" in result.output


def test_non_numeric_env_setting_exits(runner, static_config, monkeypatch):
    monkeypatch.setenv("ALERTENGINE_EVAL_INTERVAL", "30s")
    result = runner.invoke(cli, ["--config", static_config, "check"])
    assert result.exit_code == 2
    assert "must be a number" in result.output


def test_check_all_clear(runner, static_config):
    result = runner.invoke(cli, ["--config", static_config, "check"])
    assert result.exit_code == 0, result.output
    assert "Evaluated 1 rules" in result.output
    assert "All clear" in result.output


def test_replay(runner, static_config, tmp_path):
    script = tmp_path / "replay.yaml"
    script.write_text(yaml.safe_dump({
        "start": "2024-01-01T12:00:00Z",
        "interval": "1m",
        "steps": [
            {"values": {"cpu": 95}, "repeat": 6},
            {"values": {"cpu": 50}},
        ],
    }))
    result = runner.invoke(cli, ["--config", static_config, "replay", str(script)])
    assert result.exit_code == 0, result.output
    assert "firing" in result.output
    assert "resolved" in result.output
    assert "12:05:00" in result.output
    assert "Quality score: 100.0" in result.output


def test_replay_with_suppression(runner, static_config, tmp_path):
    script = tmp_path / "replay.yaml"
    script.write_text(yaml.safe_dump({
        "interval": 60,
        "steps": [
            {"suppress": {"rule": "cpu_high", "duration": "1h"}},
            {"values": {"cpu": 95}, "repeat": 6},
        ],
    }))
    result = runner.invoke(cli, ["--config", static_config, "replay", str(script)])
    assert result.exit_code == 0, result.output
    assert "suppressed" in result.output
    assert "firing" not in result.output


def test_channels_test_console(runner, static_config):
    result = runner.invoke(cli, ["--config", static_config, "channels", "test"])
    assert result.exit_code == 0, result.output
    assert "console" in result.output


def test_channels_test_unknown(runner, static_config):
    result = runner.invoke(cli, ["--config", static_config, "channels", "test", "--channel", "pager"])
    assert result.exit_code == 1
