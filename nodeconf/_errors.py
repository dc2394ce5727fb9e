"""Exception hierarchy for node settings generation.

Every failure raised while resolving settings belongs to one of a small set of
categories. Each carries the setting being resolved and the source that was
consulted so the CLI can print a single useful line before exiting.

Exceptions
----------
NodeConfError
TransportError
MissingFieldError
ValidationError
LocalIOError
SubmissionError

Examples
--------
>>> str(MissingFieldError("no 'zone' found", setting="kubernetes.provider-id", source="imds"))
"no 'zone' found (setting: kubernetes.provider-id, source: imds)"
"""

from __future__ import annotations


class NodeConfError(Exception):
    """Base error for node settings generation.

    Parameters
    ----------
    message
        Human-readable description of the failure.
    setting
        Dotted settings key being resolved when the failure occurred.
    source
        External source consulted (``imds``, ``eks``, ``apiclient``...).
    """

    def __init__(
        self,
        message: str,
        *,
        setting: str | None = None,
        source: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.setting = setting
        self.source = source

    def __str__(self) -> str:
        context = [
            f"{label}: {value}"
            for label, value in (("setting", self.setting), ("source", self.source))
            if value
        ]
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"

    def for_setting(self, setting: str) -> NodeConfError:
        """Attach *setting* when the raiser did not know it."""

        if self.setting is None:
            self.setting = setting
        return self


class TransportError(NodeConfError):
    """Raised when an external call fails or exceeds its time bound."""


class MissingFieldError(NodeConfError):
    """Raised when an external call succeeds without the expected value."""


class ValidationError(NodeConfError):
    """Raised when a retrieved or computed value fails structural checks."""


class LocalIOError(NodeConfError):
    """Raised when local files cannot be read or written."""


class SubmissionError(NodeConfError):
    """Raised when the settings store cannot be read or patched."""


__all__ = [
    "LocalIOError",
    "MissingFieldError",
    "NodeConfError",
    "SubmissionError",
    "TransportError",
    "ValidationError",
]
