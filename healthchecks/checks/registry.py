"""Check registry — loads the checks file into an immutable CheckSet.

Two formats are accepted:

Line-oriented (default)::

    # comment
    timeout=5s              <- name=value lines are reserved, ignored
    /status
    /about    Welcome to our site
    //admin.example.com/    Dashboard

YAML (``.yaml`` / ``.yml``)::

    checks:
      - /status
      - url: /about
        expected: [Welcome, Contact]

Entries sharing a URL are merged: every expected substring must appear.
Any malformed entry raises ConfigurationError. The checks are validated once
at startup, never per request.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx
import yaml

logger = logging.getLogger(__name__)

_LINE_SPLIT = re.compile(r"[\n\r]+")
_SETTING_LINE = re.compile(r"^\w+=")
_CHECK_LINE = re.compile(r"^(\S+)\s*(.*)")

ALLOWED_SCHEMES = ("http", "https")


class ConfigurationError(Exception):
    """Raised when the checks file or one of its entries is invalid."""


# ── Data models ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Check:
    """One configured endpoint and the text its response must contain."""

    url: str
    expected: tuple[str, ...] = ()


class CheckSet:
    """Ordered, immutable collection of validated checks."""

    def __init__(self, checks: Iterable[Check] = ()) -> None:
        merged: dict[str, list[str]] = {}
        for check in checks:
            validate_check_url(check.url)
            texts = merged.setdefault(check.url, [])
            texts.extend(text for text in check.expected if text and text not in texts)
        self._checks = tuple(Check(url, tuple(texts)) for url, texts in merged.items())

    @classmethod
    def from_entries(cls, entries: Iterable[tuple[str, str | Iterable[str]]]) -> CheckSet:
        """Build from ``(url, expected)`` pairs; ``expected`` may be a string or list."""
        checks = []
        for url, expected in entries:
            if isinstance(expected, str):
                expected = [expected] if expected else []
            checks.append(Check(url, tuple(expected)))
        return cls(checks)

    def __iter__(self) -> Iterator[Check]:
        return iter(self._checks)

    def __len__(self) -> int:
        return len(self._checks)

    def __getitem__(self, index: int) -> Check:
        return self._checks[index]

    def __repr__(self) -> str:
        return f"CheckSet({len(self._checks)} checks)"

    @property
    def urls(self) -> list[str]:
        return [c.url for c in self._checks]


# ── Validation ───────────────────────────────────────────────────────────────


def validate_check_url(url: str) -> None:
    """URLs may be relative to the server, but must have an absolute path."""
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise ConfigurationError(f"Invalid check URL {url!r}: {e}") from e

    if parsed.scheme and parsed.scheme not in ALLOWED_SCHEMES:
        raise ConfigurationError(f"Check URL may only use HTTP/S protocol: {url!r}")
    if not parsed.path.startswith("/"):
        raise ConfigurationError(f"Check URL must have absolute pathname: {url!r}")


# ── Parsing ──────────────────────────────────────────────────────────────────


def parse_checks(text: str, source: str = "<checks>") -> CheckSet:
    """Parse the line-oriented checks format."""
    checks: list[Check] = []
    for lineno, raw in enumerate(_LINE_SPLIT.split(text), start=1):
        line = raw.strip()
        if not line or line.startswith("#") or _SETTING_LINE.match(line):
            continue
        match = _CHECK_LINE.match(line)
        url, expected = match.group(1), match.group(2)
        try:
            validate_check_url(url)
        except ConfigurationError as e:
            raise ConfigurationError(f"{source}:{lineno}: {e}") from e
        logger.debug("Added check %s %s", url, expected)
        checks.append(Check(url, (expected,) if expected else ()))
    return CheckSet(checks)


def parse_yaml_checks(text: str, source: str = "<checks>") -> CheckSet:
    """Parse the YAML checks format."""
    try:
        raw = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"{source}: invalid YAML: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{source}: expected a mapping with a 'checks' list")

    checks: list[Check] = []
    for index, entry in enumerate(raw.get("checks") or []):
        try:
            check = _parse_yaml_entry(entry)
            validate_check_url(check.url)
        except ConfigurationError as e:
            raise ConfigurationError(f"{source}: checks[{index}]: {e}") from e
        checks.append(check)
    return CheckSet(checks)


def _parse_yaml_entry(entry: Any) -> Check:
    if isinstance(entry, str):
        match = _CHECK_LINE.match(entry.strip())
        if not match:
            raise ConfigurationError("empty check entry")
        expected = match.group(2)
        return Check(match.group(1), (expected,) if expected else ())

    if not isinstance(entry, dict) or not entry.get("url"):
        raise ConfigurationError("each check needs a 'url'")

    expected = entry.get("expected") or []
    if isinstance(expected, str):
        expected = [expected]
    if not isinstance(expected, list) or not all(isinstance(t, str) for t in expected):
        raise ConfigurationError("'expected' must be a string or a list of strings")
    return Check(str(entry["url"]), tuple(expected))


def load_checks(path: str | Path) -> CheckSet:
    """Read a checks file from disk. Raises ConfigurationError on any problem."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read checks file {path}: {e}") from e

    if path.suffix.lower() in (".yaml", ".yml"):
        check_set = parse_yaml_checks(text, source=str(path))
    else:
        check_set = parse_checks(text, source=str(path))

    logger.info("Loaded %d checks from %s", len(check_set), path)
    return check_set
