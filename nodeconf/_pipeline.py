"""Ordered execution of the resolvers and submission of the result.

Resolvers declare the settings they depend on; :func:`order_resolvers` turns
the declarations into a run order that keeps declaration order wherever the
dependencies allow it.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections import abc as cabc
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from ._aws import AWS_CONFIG_FILE_ENV_VAR, stage_aws_config
from ._errors import LocalIOError
from ._max_pods import ENI_MAX_PODS_OVERRIDE_PATH, ENI_MAX_PODS_PATH
from ._resolvers import (
    CloudApi,
    MetadataSource,
    ResolverContext,
    resolve_cluster_dns_ip,
    resolve_hostname_override,
    resolve_max_pods,
    resolve_node_ip,
    resolve_provider_id,
)
from ._settings import Setting, SettingsDelta, SettingsSnapshot, SettingsView

logger = logging.getLogger(__name__)

DEFAULT_MAX_PODS_FILES = (ENI_MAX_PODS_OVERRIDE_PATH, ENI_MAX_PODS_PATH)


class SettingsStore(Protocol):
    """Settings store operations used at the edges of a run."""

    def get_snapshot(self) -> SettingsSnapshot: ...

    def patch_settings(self, patch: dict[str, Any]) -> None: ...


@dataclass(frozen=True, slots=True)
class Resolver:
    """A pipeline entry generating *setting*, run after *requires*."""

    setting: Setting
    run: cabc.Callable[[ResolverContext], None]
    requires: tuple[Setting, ...] = ()


RESOLVERS: tuple[Resolver, ...] = (
    Resolver(Setting.CLUSTER_DNS_IP, resolve_cluster_dns_ip),
    Resolver(Setting.NODE_IP, resolve_node_ip, requires=(Setting.CLUSTER_DNS_IP,)),
    Resolver(Setting.MAX_PODS, resolve_max_pods),
    Resolver(Setting.PROVIDER_ID, resolve_provider_id),
    Resolver(Setting.HOSTNAME_OVERRIDE, resolve_hostname_override),
)


class ResolverOrderError(ValueError):
    """Raised when resolver declarations cannot be ordered."""


def order_resolvers(resolvers: cabc.Iterable[Resolver]) -> list[Resolver]:
    """Return *resolvers* so each runs after the ones it requires.

    Ties keep declaration order.

    Examples
    --------
    >>> noop = lambda ctx: None
    >>> ordered = order_resolvers([
    ...     Resolver(Setting.NODE_IP, noop, requires=(Setting.CLUSTER_DNS_IP,)),
    ...     Resolver(Setting.MAX_PODS, noop),
    ...     Resolver(Setting.CLUSTER_DNS_IP, noop),
    ... ])
    >>> [resolver.setting.value for resolver in ordered]
    ['kubernetes.max-pods', 'kubernetes.cluster-dns-ip', 'kubernetes.node-ip']
    """

    declared = list(resolvers)
    by_setting: dict[Setting, Resolver] = {}
    for resolver in declared:
        if resolver.setting in by_setting:
            msg = f"Duplicate resolver for {resolver.setting}"
            raise ResolverOrderError(msg)
        by_setting[resolver.setting] = resolver
    for resolver in declared:
        for dependency in resolver.requires:
            if dependency not in by_setting:
                msg = f"{resolver.setting} requires {dependency}, which has no resolver"
                raise ResolverOrderError(msg)

    ordered: list[Resolver] = []
    done: set[Setting] = set()
    pending = list(declared)
    while pending:
        ready = next(
            (r for r in pending if all(dep in done for dep in r.requires)),
            None,
        )
        if ready is None:
            names = ", ".join(r.setting.value for r in pending)
            msg = f"Cycle detected between resolvers: {names}"
            raise ResolverOrderError(msg)
        pending.remove(ready)
        ordered.append(ready)
        done.add(ready.setting)
    return ordered


def run_resolvers(
    snapshot: SettingsSnapshot,
    *,
    imds: MetadataSource,
    cloud: CloudApi,
    max_pods_files: tuple[Path, ...] | None = None,
    resolvers: cabc.Iterable[Resolver] = RESOLVERS,
) -> SettingsDelta:
    """Run every resolver against *snapshot* and return the new settings."""

    delta = SettingsDelta()
    ctx = ResolverContext(
        view=SettingsView(snapshot, delta),
        imds=imds,
        cloud=cloud,
        max_pods_files=max_pods_files or DEFAULT_MAX_PODS_FILES,
    )
    for resolver in order_resolvers(resolvers):
        resolver.run(ctx)
    return delta


def emit_patch(
    delta: SettingsDelta,
    store: SettingsStore,
    *,
    dry_run: bool = False,
) -> dict[str, Any] | None:
    """Submit the Kubernetes part of *delta* and return it.

    With *dry_run* the patch is only returned. ``None`` means there was
    nothing to submit.
    """

    patch = delta.kubernetes_patch()
    if patch is None:
        logger.info("No kubernetes settings to update")
        return None
    if dry_run:
        logger.info("Dry run, not submitting kubernetes settings")
        return patch
    logger.info("There are kubernetes settings to update")
    store.patch_settings(patch)
    return patch


def generate_settings(
    store: SettingsStore,
    *,
    imds: MetadataSource,
    cloud: CloudApi,
    max_pods_files: tuple[Path, ...] | None = None,
    dry_run: bool = False,
) -> dict[str, Any] | None:
    """Read the snapshot, resolve missing settings, and submit the patch.

    Nothing is submitted when any resolver raises.
    """

    logger.info("Getting current settings from the settings store")
    snapshot = store.get_snapshot()
    previous_config_file = os.environ.get(AWS_CONFIG_FILE_ENV_VAR)
    try:
        workdir = tempfile.TemporaryDirectory(prefix="nodeconf-")
    except OSError as exc:
        msg = f"Unable to create temporary directory: {exc}"
        raise LocalIOError(msg) from exc
    try:
        stage_aws_config(snapshot.get(Setting.AWS_CONFIG), Path(workdir.name))
        delta = run_resolvers(
            snapshot,
            imds=imds,
            cloud=cloud,
            max_pods_files=max_pods_files,
        )
    finally:
        if previous_config_file is None:
            os.environ.pop(AWS_CONFIG_FILE_ENV_VAR, None)
        else:
            os.environ[AWS_CONFIG_FILE_ENV_VAR] = previous_config_file
        _remove_workdir(workdir)
    return emit_patch(delta, store, dry_run=dry_run)


def _remove_workdir(workdir: tempfile.TemporaryDirectory[str]) -> None:
    try:
        workdir.cleanup()
    except OSError as exc:
        # A leftover directory must not mask the run's own outcome.
        logger.warning("Unable to remove temporary directory %s: %s", workdir.name, exc)


__all__ = [
    "RESOLVERS",
    "Resolver",
    "ResolverOrderError",
    "SettingsStore",
    "emit_patch",
    "generate_settings",
    "order_resolvers",
    "run_resolvers",
]
