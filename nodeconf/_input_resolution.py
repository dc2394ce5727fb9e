"""Resolve CLI parameters against environment variables and defaults."""

from __future__ import annotations

import os
from collections import abc as cabc
from dataclasses import dataclass
from pathlib import Path

type InputValue = str | Path | float | bool | None

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off", ""})


@dataclass(frozen=True, slots=True)
class InputResolution:
    """How to resolve one input when the CLI does not supply it."""

    env_key: str
    default: InputValue = None
    as_path: bool = False
    as_float: bool = False
    as_bool: bool = False


def parse_bool(value: str, *, name: str) -> bool:
    """Parse a boolean environment value.

    Examples
    --------
    >>> parse_bool("Yes", name="NODECONF_DRY_RUN")
    True
    """

    normalised = value.strip().lower()
    if normalised in _TRUE:
        return True
    if normalised in _FALSE:
        return False
    msg = f"{name} must be a boolean, got: {value!r}"
    raise SystemExit(msg)


def _convert(raw: str, resolution: InputResolution) -> InputValue:
    if resolution.as_path:
        return Path(raw)
    if resolution.as_bool:
        return parse_bool(raw, name=resolution.env_key)
    if resolution.as_float:
        try:
            value = float(raw)
        except ValueError as exc:
            msg = f"{resolution.env_key} must be a number, got: {raw!r}"
            raise SystemExit(msg) from exc
        if value <= 0:
            msg = f"{resolution.env_key} must be positive, got: {raw!r}"
            raise SystemExit(msg)
        return value
    return raw


def resolve_input(
    param_value: InputValue,
    resolution: InputResolution,
    env: cabc.Mapping[str, str] | None = None,
) -> InputValue:
    """Return the CLI value, else the converted environment value, else the default.

    Examples
    --------
    >>> resolve_input(None, InputResolution("NODECONF_IMDS_TIMEOUT", default=10.0, as_float=True),
    ...               env={"NODECONF_IMDS_TIMEOUT": "2.5"})
    2.5
    """

    if param_value is not None:
        return param_value

    env_value = (env if env is not None else os.environ).get(resolution.env_key)
    if env_value is not None:
        return _convert(env_value, resolution)

    return resolution.default


__all__ = ["InputResolution", "parse_bool", "resolve_input"]
