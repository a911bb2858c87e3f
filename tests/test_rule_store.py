"""Tests for rule parsing and validation."""
from datetime import timedelta

import pytest

from alerts.rule_store import RuleStore, RuleConfigError, parse_duration, parse_rule
from config import ConfigError
from models.enums import Severity


def _raw(**overrides):
    raw = {
        "name": "cpu_high",
        "metric": "node_cpu_utilisation",
        "condition": {"operator": ">", "threshold": 90, "duration": "5m"},
        "severity": "critical",
        "labels": {"service": "api"},
        "annotations": {"summary": "CPU above 90%"},
    }
    raw.update(overrides)
    return raw


@pytest.mark.parametrize("value,expected", [
    (300, timedelta(minutes=5)),
    ("30s", timedelta(seconds=30)),
    ("5m", timedelta(minutes=5)),
    ("1h", timedelta(hours=1)),
    ("1d", timedelta(days=1)),
    ("90", timedelta(seconds=90)),
    ("1.5m", timedelta(seconds=90)),
    (timedelta(minutes=2), timedelta(minutes=2)),
])
def test_parse_duration(value, expected):
    assert parse_duration(value) == expected


@pytest.mark.parametrize("value", ["5 minutes", "-5m", -1, True, "", "m"])
def test_parse_duration_rejects(value):
    with pytest.raises(ValueError):
        parse_duration(value)


def test_parse_rule():
    rule = parse_rule(_raw())
    assert rule.name == "cpu_high"
    assert rule.condition.operator == ">"
    assert rule.condition.threshold == 90.0
    assert rule.condition.duration == timedelta(minutes=5)
    assert rule.severity == Severity.CRITICAL
    assert rule.service == "api"
    assert rule.selector == {}


def test_severity_case_insensitive():
    assert parse_rule(_raw(severity="WARNING")).severity == Severity.WARNING


def test_service_defaults():
    rule = parse_rule(_raw(labels=None))
    assert rule.service == "default"


def test_all_errors_reported():
    bad = [
        _raw(name="one", condition={"operator": "=~", "threshold": 1}),
        _raw(name="two", severity="page"),
        _raw(name="three", condition={"operator": ">", "threshold": "high"}),
        _raw(name="four", metric=None),
        {"metric": "x"},
    ]
    with pytest.raises(RuleConfigError) as exc:
        RuleStore.from_dicts(bad)
    errors = exc.value.errors
    assert len(errors) == 5
    assert any("invalid operator" in e for e in errors)
    assert any("unknown severity" in e for e in errors)
    assert any("threshold must be numeric" in e for e in errors)
    assert any("missing metric" in e for e in errors)
    assert any("missing name" in e for e in errors)


def test_duplicate_names_rejected():
    with pytest.raises(RuleConfigError, match="duplicate"):
        RuleStore.from_dicts([_raw(), _raw()])


def test_rule_config_error_is_config_error():
    with pytest.raises(ConfigError):
        RuleStore.from_dicts("not a list")


def test_from_file(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text("""
rules:
  - name: cpu_high
    metric: cpu
    condition: {operator: ">", threshold: 90, duration: 5m}
    severity: critical
  - name: disk_low
    metric: disk_free_ratio
    condition: {operator: "<", threshold: 0.05}
    severity: fatal
    selector: {mountpoint: /data}
""")
    store = RuleStore.from_file(path)
    assert len(store) == 2
    assert [r.name for r in store] == ["cpu_high", "disk_low"]
    disk = store.get_rule("disk_low")
    assert disk.condition.duration == timedelta(0)
    assert disk.selector == {"mountpoint": "/data"}
    assert store.get_rule("missing") is None


def test_from_file_missing(tmp_path):
    with pytest.raises(RuleConfigError, match="not found"):
        RuleStore.from_file(tmp_path / "nope.yaml")


def test_from_file_bad_yaml(tmp_path):
    path = tmp_path / "rules.yaml"
    path.write_text("rules: [\n  - name: x\n")
    with pytest.raises(RuleConfigError, match="YAML"):
        RuleStore.from_file(path)


def test_bundled_rules_load():
    from config import load_config
    store = RuleStore.from_file(load_config()["rules"]["path"])
    assert store.get_rule("cpu_high").severity == Severity.CRITICAL
    assert store.get_rule("disk_almost_full").selector
