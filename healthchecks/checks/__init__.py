from healthchecks.checks.registry import (
    Check,
    CheckSet,
    ConfigurationError,
    load_checks,
    parse_checks,
    parse_yaml_checks,
)

__all__ = [
    "Check",
    "CheckSet",
    "ConfigurationError",
    "load_checks",
    "parse_checks",
    "parse_yaml_checks",
]
