"""Tests for the plumbum-backed command runner."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import pytest
from plumbum.commands.processes import (
    CommandNotFound,
    ProcessExecutionError,
    ProcessTimedOut,
)

from nodeconf import _commands
from nodeconf._commands import CommandContext, run_command
from nodeconf._errors import TransportError


class _FakeBound:
    def __init__(self, local: _FakeLocal, name: str, args: list[str]) -> None:
        self._local = local
        self._name = name
        self._args = args

    def run(self, env: dict[str, str] | None = None, timeout: float | None = None) -> tuple[int, str, str]:
        self._local.calls.append({"name": self._name, "args": self._args, "env": env, "timeout": timeout})
        if self._local.error is not None:
            raise self._local.error
        return 0, self._local.stdout, ""


class _FakeCommand:
    def __init__(self, local: _FakeLocal, name: str) -> None:
        self._local = local
        self._name = name

    def __getitem__(self, args: list[str]) -> _FakeBound:
        return _FakeBound(self._local, self._name, list(args))


class _FakeLocal:
    def __init__(self, stdout: str = "", error: Exception | None = None, missing: bool = False) -> None:
        self.stdout = stdout
        self.error = error
        self.missing = missing
        self.calls: list[dict[str, Any]] = []

    def __getitem__(self, name: str) -> _FakeCommand:
        if self.missing:
            raise CommandNotFound(name, [])
        return _FakeCommand(self, name)


def test_run_command_returns_stdout(monkeypatch: pytest.MonkeyPatch) -> None:
    fake = _FakeLocal(stdout='{"settings": {}}')
    monkeypatch.setattr(_commands, "local", fake)

    output = run_command("apiclient", "get", "settings.aws", context=CommandContext(timeout=5))

    assert output == '{"settings": {}}'
    call = fake.calls[0]
    assert call["name"] == "apiclient"
    assert call["args"] == ["get", "settings.aws"]
    assert call["timeout"] == 5
    assert call["env"]["PATH"] == os.environ["PATH"], "environment is inherited by default"


def test_run_command_uses_explicit_env(monkeypatch: pytest.MonkeyPatch) -> None:
    fake = _FakeLocal()
    monkeypatch.setattr(_commands, "local", fake)
    run_command("apiclient", "get", context=CommandContext(env={"ONLY": "this"}))
    assert fake.calls[0]["env"] == {"ONLY": "this"}


def test_run_command_wraps_failures(monkeypatch: pytest.MonkeyPatch) -> None:
    error = ProcessExecutionError(["apiclient", "raw"], 1, "", "connection refused\n")
    monkeypatch.setattr(_commands, "local", _FakeLocal(error=error))
    with pytest.raises(TransportError, match="failed with status 1: connection refused") as excinfo:
        run_command("apiclient", "raw", context=CommandContext(source="apiclient"))
    assert excinfo.value.source == "apiclient"


def test_run_command_wraps_timeouts(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(_commands, "local", _FakeLocal(error=ProcessTimedOut("slow", ["apiclient"])))
    with pytest.raises(TransportError, match="timed out after 300s"):
        run_command("apiclient", "raw", "-m", "PATCH", context=CommandContext(timeout=300))


def test_run_command_reports_missing_binary(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(_commands, "local", _FakeLocal(missing=True))
    with pytest.raises(TransportError, match="not found"):
        run_command("apiclient", "get")


def test_run_command_wraps_exec_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    error = PermissionError(13, "Permission denied")
    monkeypatch.setattr(_commands, "local", _FakeLocal(error=error))
    with pytest.raises(TransportError, match="could not be executed") as excinfo:
        run_command("apiclient", "get", context=CommandContext(source="apiclient"))
    assert excinfo.value.source == "apiclient"


def test_run_command_non_executable_file(tmp_path: Path) -> None:
    binary = tmp_path / "apiclient"
    binary.write_text("#!/bin/sh\necho {}\n", encoding="utf-8")
    binary.chmod(0o644)
    with pytest.raises(TransportError, match="could not be executed"):
        run_command(str(binary), "get")


def test_run_command_reads_environment_at_call_time(monkeypatch: pytest.MonkeyPatch) -> None:
    fake = _FakeLocal()
    monkeypatch.setattr(_commands, "local", fake)
    monkeypatch.setenv("AWS_CONFIG_FILE", "/tmp/nodeconf/config")

    run_command("apiclient", "get")

    assert fake.calls[0]["env"]["AWS_CONFIG_FILE"] == "/tmp/nodeconf/config"
