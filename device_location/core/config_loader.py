"""Reader for ``key = value`` settings files such as the bundled ``config.txt``.

Only keys present in ``defaults`` are accepted, and each value is coerced to
the type of its default, so the result can be splatted straight into a
settings dataclass. Bad values are reported and the default is kept.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Mapping

from device_location.core.logging_utils import get_module_logger

logger = get_module_logger("ConfigFile")

_TRUE_WORDS = frozenset({"true", "yes", "on", "1"})
_FALSE_WORDS = frozenset({"false", "no", "off", "0"})


def coerce_value(raw: str, default: Any) -> Any:
    """Convert ``raw`` to the type of ``default``. Raises ValueError."""
    if isinstance(default, bool):
        word = raw.lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        raise ValueError(f"expected a boolean, got {raw!r}")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


def parse_config_lines(
    lines: Iterable[str],
    defaults: Mapping[str, Any],
    *,
    origin: str = "<config>",
) -> dict[str, Any]:
    """Apply ``key = value`` lines over ``defaults``; ``#`` starts a comment."""
    values = dict(defaults)
    for line_num, line in enumerate(lines, 1):
        line = line.split("#", 1)[0].strip()
        if not line:
            continue
        key, sep, raw = line.partition("=")
        key = key.strip()
        if not sep:
            logger.warning("%s:%d: ignoring line without '=': %s", origin, line_num, line)
            continue
        if key not in defaults:
            logger.warning("%s:%d: unknown setting '%s' ignored", origin, line_num, key)
            continue
        try:
            values[key] = coerce_value(raw.strip(), defaults[key])
        except ValueError as exc:
            logger.warning(
                "%s:%d: bad value for '%s' (%s); keeping %r",
                origin, line_num, key, exc, defaults[key],
            )
    return values


def load_config_file(path: Path, defaults: Mapping[str, Any]) -> dict[str, Any]:
    """Read ``path`` over ``defaults``. A missing or unreadable file yields the defaults."""
    if not path.exists():
        logger.debug("No settings file at %s, using defaults", path)
        return dict(defaults)
    try:
        with open(path, "r", encoding="utf-8") as f:
            values = parse_config_lines(f, defaults, origin=str(path))
    except OSError as exc:
        logger.error("Failed to read settings file %s: %s", path, exc)
        return dict(defaults)
    logger.debug("Loaded settings from %s", path)
    return values


__all__ = ["coerce_value", "load_config_file", "parse_config_lines"]
