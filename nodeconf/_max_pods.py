"""Instance-type to max-pods table lookup.

Table files are line oriented::

    # Mapping is calculated from AWS EC2 API using the following formula:
    m5.large 29
    m5.xlarge 58

Lines starting with ``#`` are comments and lines that do not hold exactly two
whitespace-separated tokens are ignored. The first row naming the instance
type wins.
"""

from __future__ import annotations

import logging
from collections import abc as cabc
from pathlib import Path

from ._errors import LocalIOError, MissingFieldError, ValidationError

logger = logging.getLogger(__name__)

ENI_MAX_PODS_PATH = Path("/usr/share/eks/eni-max-pods")
ENI_MAX_PODS_OVERRIDE_PATH = Path("/usr/share/eks/eni-max-pods-override")


def find_max_pods(instance_type: str, lines: cabc.Iterable[str]) -> int | None:
    """Return the max-pods value for *instance_type* from table *lines*.

    Examples
    --------
    >>> find_max_pods("m5.large", ["# comment", "m5.large 29 extra", "m5.large 29"])
    29
    >>> find_max_pods("t3.nano", ["m5.large 29"]) is None
    True
    """

    for line in lines:
        if line.lstrip().startswith("#"):
            continue
        tokens = line.split()
        if len(tokens) != 2 or tokens[0] != instance_type:
            continue
        try:
            return int(tokens[1])
        except ValueError as exc:
            msg = f"Failed to parse setting {tokens[1]!r} as an integer"
            raise ValidationError(msg, setting="kubernetes.max-pods") from exc
    return None


def max_pods_from_file(instance_type: str, path: Path) -> int:
    """Look up *instance_type* in the table stored at *path*."""

    logger.info("Reading max pods for %s from %s", instance_type, path)
    try:
        with path.open(encoding="utf-8") as handle:
            value = find_max_pods(instance_type, handle)
    except OSError as exc:
        msg = f"Failed to open eni-max-pods file at {path}: {exc}"
        raise LocalIOError(msg, setting="kubernetes.max-pods", source=str(path)) from exc
    if value is None:
        msg = f"Unable to find maximum number of pods supported for instance-type {instance_type}"
        raise MissingFieldError(msg, setting="kubernetes.max-pods", source=str(path))
    return value


__all__ = [
    "ENI_MAX_PODS_OVERRIDE_PATH",
    "ENI_MAX_PODS_PATH",
    "find_max_pods",
    "max_pods_from_file",
]
