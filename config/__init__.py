"""Configuration management."""
import os
import yaml
from pathlib import Path

_config = None
_DEFAULT_CONFIG = Path(__file__).parent / "default_config.yaml"
_PROJECT_ROOT = Path(__file__).parent.parent


class ConfigError(ValueError):
    """Configuration that the engine refuses to start with."""


def load_config(path=None):
    """Load config from YAML, merging defaults with optional overrides."""
    global _config

    with open(_DEFAULT_CONFIG) as f:
        config = yaml.safe_load(f)

    if path:
        if not Path(path).exists():
            raise ConfigError(f"Config file not found: {path}")
        with open(path) as f:
            overrides = yaml.safe_load(f) or {}
        if not isinstance(overrides, dict):
            raise ConfigError(f"Config file must hold a mapping: {path}")
        config = _deep_merge(config, overrides)

    # Environment variable overrides
    env_map = {
        "ALERTENGINE_RULES_PATH": ("rules", "path"),
        "ALERTENGINE_EVAL_INTERVAL": ("evaluator", "interval_seconds"),
        "ALERTENGINE_LOG_LEVEL": ("logging", "level"),
        "ALERTENGINE_PROMETHEUS_URL": ("metrics", "prometheus", "url"),
    }
    for env_key, config_path in env_map.items():
        val = os.environ.get(env_key)
        if val:
            d = config
            for k in config_path[:-1]:
                d = d.setdefault(k, {})
            try:
                d[config_path[-1]] = int(val)
            except ValueError:
                d[config_path[-1]] = val

    _validate_config(config)
    # Relative rules paths are tried from the working directory, then the project root
    rules_path = Path(str(config["rules"]["path"]))
    if not rules_path.is_absolute() and not rules_path.exists() and (_PROJECT_ROOT / rules_path).exists():
        config["rules"]["path"] = str(_PROJECT_ROOT / rules_path)

    _config = config
    return config


def get_config():
    """Return cached config, loading defaults if needed."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def _deep_merge(base, override):
    """Recursively merge override into base dict."""
    result = base.copy()
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _validate_config(config):
    """Reject settings the engine cannot run with."""
    required_sections = ["rules", "evaluator", "escalation", "throttle", "routing", "channels", "metrics"]
    for section in required_sections:
        if section not in config:
            raise ConfigError(f"Missing required config section: {section}")

    numeric = [
        ("evaluator", "interval_seconds"), ("evaluator", "max_workers"),
        ("escalation", "interval_seconds"), ("throttle", "window_seconds"),
        ("throttle", "max_count"), ("routing", "channel_timeout_seconds"),
        ("routing", "dispatch_deadline_seconds"), ("routing", "max_workers"),
    ]
    for section, key in numeric:
        val = config[section].get(key)
        # bool is an int subclass; "true" in a number field is a typo
        if val is not None and (isinstance(val, bool) or not isinstance(val, (int, float))):
            raise ConfigError(f"{section}.{key} must be a number, got {val!r}")

    if config["evaluator"]["interval_seconds"] < 1:
        raise ConfigError("evaluator.interval_seconds must be >= 1")
    if config["evaluator"].get("max_workers", 1) < 1:
        raise ConfigError("evaluator.max_workers must be >= 1")
    if config["escalation"]["interval_seconds"] <= 0:
        raise ConfigError("escalation.interval_seconds must be positive")
    if config["throttle"]["window_seconds"] <= 0:
        raise ConfigError("throttle.window_seconds must be positive")
    if config["throttle"]["max_count"] < 1:
        raise ConfigError("throttle.max_count must be >= 1")

    routing = config["routing"]
    hours = routing.get("business_hours", {})
    start, end = hours.get("start_hour", 9), hours.get("end_hour", 18)
    if not (0 <= start < end <= 24):
        raise ConfigError(f"business_hours must satisfy 0 <= start < end <= 24, got {start}-{end}")
    if any(d not in range(7) for d in hours.get("weekdays", [])):
        raise ConfigError("business_hours.weekdays must be integers 0 (Mon) to 6 (Sun)")
    if routing.get("channel_timeout_seconds", 5) <= 0 or routing.get("dispatch_deadline_seconds", 10) <= 0:
        raise ConfigError("routing timeouts must be positive")
