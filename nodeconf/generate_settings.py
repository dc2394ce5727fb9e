"""Generate the Kubernetes settings a node needs to join its cluster.

Runs once at boot. It:

- reads the current settings from the settings store with ``apiclient``;
- stages ``settings.aws.config`` so AWS SDK calls honour it;
- resolves the cluster DNS IP, node IP, max pods, provider ID, and hostname
  override from instance metadata and the cluster API when they are unset; and
- submits only the newly generated values in the boot-time transaction.

Any setting already present is left untouched. Exit status is ``0`` on
success and ``1`` when a required setting cannot be generated, in which case
nothing is submitted.
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from cyclopts import App, Parameter

from ._apiclient import ApiClient
from ._aws import AWS_CALL_TIMEOUT_SECONDS, AwsClient
from ._errors import NodeConfError
from ._imds import DEFAULT_ENDPOINT, DEFAULT_TIMEOUT_SECONDS, ImdsClient
from ._input_resolution import InputResolution, resolve_input
from ._max_pods import ENI_MAX_PODS_OVERRIDE_PATH, ENI_MAX_PODS_PATH
from ._pipeline import SettingsStore, generate_settings
from ._resolvers import CloudApi, MetadataSource

app = App(help="Generate boot-time Kubernetes settings for this node.")
logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True, slots=True)
class RawInputs:
    """CLI inputs before environment and default resolution."""

    apiclient: str | None = None
    imds_endpoint: str | None = None
    imds_timeout: float | None = None
    max_pods_file: Path | None = None
    max_pods_override_file: Path | None = None
    log_level: str | None = None
    dry_run: bool | None = None


@dataclass(frozen=True, slots=True)
class RunnerConfig:
    """Resolved configuration for a run."""

    apiclient: str = "apiclient"
    imds_endpoint: str = DEFAULT_ENDPOINT
    imds_timeout: float = DEFAULT_TIMEOUT_SECONDS
    max_pods_file: Path = ENI_MAX_PODS_PATH
    max_pods_override_file: Path = ENI_MAX_PODS_OVERRIDE_PATH
    log_level: str = "INFO"
    dry_run: bool = False

    @property
    def max_pods_files(self) -> tuple[Path, ...]:
        """Return the tables in lookup order, override first."""

        return (self.max_pods_override_file, self.max_pods_file)


def build_config(raw: RawInputs, env: dict[str, str] | None = None) -> RunnerConfig:
    """Resolve *raw* against ``NODECONF_*`` environment variables.

    Examples
    --------
    >>> build_config(RawInputs(), env={"NODECONF_DRY_RUN": "true"}).dry_run
    True
    """

    defaults = RunnerConfig()
    log_level = str(
        resolve_input(
            raw.log_level,
            InputResolution(env_key="NODECONF_LOG_LEVEL", default=defaults.log_level),
            env=env,
        )
    ).upper()
    if log_level not in logging.getLevelNamesMapping():
        msg = f"NODECONF_LOG_LEVEL must be a logging level, got: {log_level!r}"
        raise SystemExit(msg)

    return RunnerConfig(
        apiclient=str(
            resolve_input(
                raw.apiclient,
                InputResolution(env_key="NODECONF_APICLIENT", default=defaults.apiclient),
                env=env,
            )
        ),
        imds_endpoint=str(
            resolve_input(
                raw.imds_endpoint,
                InputResolution(
                    env_key="NODECONF_IMDS_ENDPOINT", default=defaults.imds_endpoint
                ),
                env=env,
            )
        ).rstrip("/"),
        imds_timeout=float(
            resolve_input(  # type: ignore[arg-type]
                raw.imds_timeout,
                InputResolution(
                    env_key="NODECONF_IMDS_TIMEOUT",
                    default=defaults.imds_timeout,
                    as_float=True,
                ),
                env=env,
            )
        ),
        max_pods_file=Path(
            resolve_input(  # type: ignore[arg-type]
                raw.max_pods_file,
                InputResolution(
                    env_key="NODECONF_MAX_PODS_FILE",
                    default=defaults.max_pods_file,
                    as_path=True,
                ),
                env=env,
            )
        ),
        max_pods_override_file=Path(
            resolve_input(  # type: ignore[arg-type]
                raw.max_pods_override_file,
                InputResolution(
                    env_key="NODECONF_MAX_PODS_OVERRIDE_FILE",
                    default=defaults.max_pods_override_file,
                    as_path=True,
                ),
                env=env,
            )
        ),
        log_level=log_level,
        dry_run=bool(
            resolve_input(
                raw.dry_run,
                InputResolution(env_key="NODECONF_DRY_RUN", default=False, as_bool=True),
                env=env,
            )
        ),
    )


def configure_logging(level: str) -> None:
    """Send log records to stderr so stdout stays free for ``--dry-run``."""

    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr, force=True)


def run(
    config: RunnerConfig,
    *,
    store: SettingsStore | None = None,
    imds: MetadataSource | None = None,
    cloud: CloudApi | None = None,
) -> int:
    """Generate and submit settings; return the process exit status.

    A dry run prints the patch to stdout instead of submitting it.
    """

    logger.info("Starting settings generation")
    try:
        patch = generate_settings(
            store or ApiClient(binary=config.apiclient),
            imds=imds or ImdsClient(endpoint=config.imds_endpoint, timeout=config.imds_timeout),
            cloud=cloud or AwsClient(timeout=AWS_CALL_TIMEOUT_SECONDS),
            max_pods_files=config.max_pods_files,
            dry_run=config.dry_run,
        )
    except NodeConfError as exc:
        logger.info("Settings generation failed")
        print(f"error: {exc}", file=sys.stderr)
        return 1
    if config.dry_run and patch is not None:
        print(json.dumps(patch, indent=2, sort_keys=True))
    logger.info("Settings generation finished")
    return 0


@app.default
def main(
    apiclient: str | None = Parameter(),
    imds_endpoint: str | None = Parameter(),
    imds_timeout: float | None = Parameter(),
    max_pods_file: Path | None = Parameter(),
    max_pods_override_file: Path | None = Parameter(),
    log_level: str | None = Parameter(),
    dry_run: bool | None = Parameter(),
) -> int:
    """Generate missing Kubernetes settings and submit them.

    Parameters
    ----------
    apiclient : str | None, optional
        Settings store CLI; falls back to ``NODECONF_APICLIENT``.
    imds_endpoint : str | None, optional
        Instance metadata base URL; falls back to ``NODECONF_IMDS_ENDPOINT``.
    imds_timeout : float | None, optional
        Per-request metadata timeout in seconds; falls back to
        ``NODECONF_IMDS_TIMEOUT``.
    max_pods_file : Path | None, optional
        Default max-pods table; falls back to ``NODECONF_MAX_PODS_FILE``.
    max_pods_override_file : Path | None, optional
        Override max-pods table; falls back to
        ``NODECONF_MAX_PODS_OVERRIDE_FILE``.
    log_level : str | None, optional
        Logging level; falls back to ``NODECONF_LOG_LEVEL``.
    dry_run : bool | None, optional
        Print the patch instead of submitting it; falls back to
        ``NODECONF_DRY_RUN``.
    """

    config = build_config(
        RawInputs(
            apiclient=apiclient,
            imds_endpoint=imds_endpoint,
            imds_timeout=imds_timeout,
            max_pods_file=max_pods_file,
            max_pods_override_file=max_pods_override_file,
            log_level=log_level,
            dry_run=dry_run,
        )
    )
    configure_logging(config.log_level)
    return run(config)


def cli() -> None:
    """Console-script entry point."""

    raise SystemExit(app())


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    cli()
