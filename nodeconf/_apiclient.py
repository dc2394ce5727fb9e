"""Settings store access through the ``apiclient`` CLI.

Examples
--------
>>> store = ApiClient(binary="apiclient")
>>> snapshot = store.get_snapshot()  # doctest: +SKIP
>>> store.patch_settings({"kubernetes": {"max-pods": 29}})  # doctest: +SKIP
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from ._commands import CommandContext, run_command
from ._errors import SubmissionError, TransportError
from ._settings import SettingsSnapshot

logger = logging.getLogger(__name__)

API_SETTINGS_URI = "/settings"
LAUNCH_TRANSACTION = "bottlerocket-launch"
SNAPSHOT_PREFIXES = ("settings.aws", "settings.kubernetes", "settings.network")


@dataclass(frozen=True, slots=True)
class ApiClient:
    """Thin wrapper around the settings store CLI."""

    binary: str = "apiclient"

    def _run(self, *args: str) -> str:
        try:
            return run_command(
                self.binary,
                *args,
                context=CommandContext(source="apiclient"),
            )
        except TransportError as exc:
            raise SubmissionError(exc.message, source="apiclient") from exc

    def get_snapshot(self) -> SettingsSnapshot:
        """Read the current settings relevant to cluster bootstrap."""

        stdout = self._run("get", *SNAPSHOT_PREFIXES)
        try:
            document = json.loads(stdout) if stdout.strip() else {}
        except json.JSONDecodeError as exc:
            msg = f"apiclient returned invalid JSON: {exc}"
            raise SubmissionError(msg, source="apiclient") from exc
        if not isinstance(document, dict):
            msg = "apiclient JSON root must be an object"
            raise SubmissionError(msg, source="apiclient")
        return SettingsSnapshot.from_document(document)

    def patch_settings(self, patch: dict[str, Any]) -> None:
        """Submit *patch* in the boot-time transaction."""

        try:
            body = json.dumps(patch)
        except (TypeError, ValueError) as exc:
            msg = f"Failed to serialize generated settings: {exc}"
            raise SubmissionError(msg, source="apiclient") from exc
        uri = f"{API_SETTINGS_URI}?tx={LAUNCH_TRANSACTION}"
        logger.info("Running API call %s with data %s", uri, body)
        self._run("raw", "-m", "PATCH", "-u", uri, "-d", body)


__all__ = [
    "API_SETTINGS_URI",
    "ApiClient",
    "LAUNCH_TRANSACTION",
    "SNAPSHOT_PREFIXES",
]
