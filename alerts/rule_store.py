"""Alert rule loading and validation."""
import logging
import re
from datetime import timedelta
from pathlib import Path

import yaml

from config import ConfigError
from models.alerts import AlertRule, Condition, OPERATOR_MAP
from models.enums import Severity

logger = logging.getLogger("alertengine.rules")

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([smhd]?)\s*$")
_UNIT_SECONDS = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


class RuleConfigError(ConfigError):
    """One or more rules are malformed. `errors` lists every problem found."""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("Invalid alert rules:\n  " + "\n  ".join(self.errors))


def parse_duration(value) -> timedelta:
    """Parse 300, '30s', '5m', '1h' or '1d' into a timedelta."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        match = _DURATION_RE.match(str(value))
        if not match:
            raise ValueError(f"invalid duration: {value!r}")
        seconds = float(match.group(1)) * _UNIT_SECONDS[match.group(2)]
    if seconds < 0:
        raise ValueError(f"duration must not be negative: {value!r}")
    return timedelta(seconds=seconds)


def _string_map(raw, field_name, where, errors):
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        errors.append(f"{where}: {field_name} must be a mapping")
        return {}
    return {str(k): str(v) for k, v in raw.items()}


def parse_rule(raw, index=0, errors=None):
    """Build an AlertRule from a config dict, appending problems to `errors`."""
    errors = errors if errors is not None else []
    where = f"rule #{index + 1}"
    if not isinstance(raw, dict):
        errors.append(f"{where}: expected a mapping, got {type(raw).__name__}")
        return None

    name = raw.get("name")
    if not name:
        errors.append(f"{where}: missing name")
        return None
    where = f"rule '{name}'"

    metric = raw.get("metric")
    if not metric:
        errors.append(f"{where}: missing metric")

    cond = raw.get("condition")
    if not isinstance(cond, dict):
        errors.append(f"{where}: missing condition")
        return None

    operator = cond.get("operator")
    if operator not in OPERATOR_MAP:
        errors.append(f"{where}: invalid operator {operator!r}")

    try:
        threshold = float(cond["threshold"])
    except KeyError:
        errors.append(f"{where}: missing threshold")
        threshold = None
    except (TypeError, ValueError):
        errors.append(f"{where}: threshold must be numeric, got {cond.get('threshold')!r}")
        threshold = None

    try:
        duration = parse_duration(cond.get("duration", 0))
    except ValueError as e:
        errors.append(f"{where}: {e}")
        duration = None

    try:
        severity = Severity.parse(raw.get("severity", "warning"))
    except ValueError as e:
        errors.append(f"{where}: {e}")
        severity = None

    labels = _string_map(raw.get("labels"), "labels", where, errors)
    annotations = _string_map(raw.get("annotations"), "annotations", where, errors)
    selector = _string_map(raw.get("selector"), "selector", where, errors)

    if None in (threshold, duration, severity) or not metric or operator not in OPERATOR_MAP:
        return None

    return AlertRule(
        name=str(name),
        metric=str(metric),
        condition=Condition(operator=operator, threshold=threshold, duration=duration),
        severity=severity,
        labels=labels,
        annotations=annotations,
        selector=selector,
    )


class RuleStore:
    """Immutable set of alert rules, loaded once.

    Any malformed rule makes loading fail with RuleConfigError; rules are
    never skipped silently.
    """

    def __init__(self, rules=None):
        self._rules = tuple(rules or ())
        self._by_name = {r.name: r for r in self._rules}

    @classmethod
    def from_file(cls, path):
        path = Path(path)
        if not path.exists():
            raise RuleConfigError([f"rules file not found: {path}"])
        with open(path) as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise RuleConfigError([f"{path}: YAML parse error: {e}"]) from e
        store = cls.from_dicts(data.get("rules", []) if isinstance(data, dict) else data)
        logger.info(f"Loaded {len(store)} rules from {path}")
        return store

    @classmethod
    def from_dicts(cls, raw_rules):
        if not isinstance(raw_rules, list):
            raise RuleConfigError(["'rules' must be a list"])
        errors = []
        rules = []
        seen = set()
        for i, raw in enumerate(raw_rules):
            rule = parse_rule(raw, i, errors)
            if rule is None:
                continue
            if rule.name in seen:
                errors.append(f"rule '{rule.name}': duplicate name")
                continue
            seen.add(rule.name)
            rules.append(rule)
        if errors:
            raise RuleConfigError(errors)
        return cls(rules)

    def get_all_rules(self):
        return list(self._rules)

    def get_rule(self, name):
        return self._by_name.get(name)

    def __len__(self):
        return len(self._rules)

    def __iter__(self):
        return iter(self._rules)
