"""
Run configuration.

The old exporter read everything from env-vars. This runs from cron / a systemd timer on a box that isn't k8s
so flags are the primary interface, but every flag still takes its default from an env-var.
"""

import argparse
from dataclasses import dataclass
from os import getenv
from pathlib import Path
from urllib.parse import urlsplit

from err.exceptions import ConfigError
from util.const import (
    DEFAULT_CORRECTABLE_THRESHOLD,
    DEFAULT_GRACE_SECONDS,
    DEFAULT_HOMESERVER,
    DEFAULT_MODEM_URL,
    DEFAULT_UNCORRECTABLE_THRESHOLD,
    PROG_NAME,
    VERSION,
    LogLevel,
)


@dataclass(frozen=True)
class Thresholds:
    correctable_threshold: int
    uncorrectable_threshold: int


@dataclass(frozen=True)
class RemediationRequest:
    reset: bool = False
    dry_run: bool = False
    # There is no "notify only" mode; if we got this far we are rebooting.
    reboot: bool = True

    @property
    def reset_arg(self) -> tuple[str, str]:
        return ("RestoreFactoryDefault", "1" if self.reset else "0")


@dataclass(frozen=True)
class Opts:
    modem_url: str
    homeserver: str
    thresholds: Thresholds
    remediation: RemediationRequest
    notify: bool
    config_dir: Path
    cache_dir: Path
    grace_seconds: float = DEFAULT_GRACE_SECONDS
    retries: int = 0
    best_effort_notify: bool = False
    log_level: LogLevel = LogLevel.INFO
    metrics_textfile: Path | None = None

    @property
    def dry_run(self) -> bool:
        return self.remediation.dry_run

    @classmethod
    def from_args(cls, ns: argparse.Namespace) -> "Opts":
        """Validate parsed CLI args and derive the run options.

        `-n` is a silent dry run. `-N` is a dry run that still sends the Matrix notification.
        """
        for name in ("uthreshold", "cthreshold", "retries"):
            if getattr(ns, name) < 0:
                raise ConfigError(f"{name} must not be negative", payload=getattr(ns, name))
        if ns.grace_seconds < 0:
            raise ConfigError("grace period must not be negative", payload=ns.grace_seconds)

        if ns.log_level.upper() not in LogLevel.__members__:
            raise ConfigError(f"unknown log level {ns.log_level!r}", payload=ns.log_level)

        dry_run = ns.dry_run or ns.dry_run_notify
        return cls(
            modem_url=_http_url(ns.modem, "modem"),
            homeserver=_http_url(ns.homeserver, "homeserver"),
            thresholds=Thresholds(
                correctable_threshold=ns.cthreshold,
                uncorrectable_threshold=ns.uthreshold,
            ),
            remediation=RemediationRequest(reset=ns.reset, dry_run=dry_run),
            notify=not (ns.dry_run and not ns.dry_run_notify),
            config_dir=Path(ns.config_dir).expanduser(),
            cache_dir=Path(ns.cache_dir).expanduser(),
            grace_seconds=ns.grace_seconds,
            retries=ns.retries,
            best_effort_notify=ns.best_effort_notify,
            log_level=LogLevel[ns.log_level.upper()],
            metrics_textfile=Path(ns.metrics_textfile) if ns.metrics_textfile else None,
        )


def _http_url(value: str, what: str) -> str:
    parts = urlsplit(value)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigError(f"{what} address must be an http(s) URL", payload=value)
    # Relative joins (`goform/...`) need the base to end with a slash
    if not value.endswith("/"):
        value += "/"
    return value


def _xdg_dir(env_var: str, fallback: str) -> Path:
    base = getenv(env_var) or str(Path.home() / fallback)
    return Path(base) / PROG_NAME


def _env_number(name: str, default, cast=int):
    raw = getenv(name)
    if raw is None:
        return default
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number", payload=raw) from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG_NAME,
        description="Reboot a cable modem when its downstream error counters get too high.",
    )
    parser.add_argument("--version", action="version", version=f"{PROG_NAME} {VERSION}")
    parser.add_argument(
        "-m",
        "--modem",
        default=getenv("MODEM_BASE_URL", DEFAULT_MODEM_URL),
        help="modem address (default: %(default)s)",
    )
    parser.add_argument(
        "-r",
        "--reset",
        action="store_true",
        help="factory reset the modem if sending a reboot command",
    )
    parser.add_argument(
        "-c",
        "--count",
        dest="uthreshold",
        type=int,
        default=_env_number("UNCORRECTABLE_THRESHOLD", DEFAULT_UNCORRECTABLE_THRESHOLD),
        help="threshold count of uncorrectable errors (default: %(default)s)",
    )
    parser.add_argument(
        "--correct-count",
        dest="cthreshold",
        type=int,
        default=_env_number("CORRECTABLE_THRESHOLD", DEFAULT_CORRECTABLE_THRESHOLD),
        help="threshold count of correctable errors (default: %(default)s)",
    )
    parser.add_argument(
        "--homeserver",
        default=getenv("MATRIX_HOMESERVER", DEFAULT_HOMESERVER),
        help="homeserver for matrix notifications (default: %(default)s)",
    )
    parser.add_argument("-n", "--dry-run", action="store_true", help="dry run")
    parser.add_argument(
        "-N", "--dry-run-notify", action="store_true", help="dry run, but still notify"
    )
    parser.add_argument(
        "--grace-seconds",
        type=float,
        default=_env_number("GRACE_SECONDS", DEFAULT_GRACE_SECONDS, cast=float),
        help="pause between notifying and rebooting (default: %(default)s)",
    )
    parser.add_argument(
        "--config-dir",
        default=str(_xdg_dir("XDG_CONFIG_HOME", ".config")),
        help="directory holding the matrix `config` and `session` files (default: %(default)s)",
    )
    parser.add_argument(
        "--cache-dir",
        default=str(_xdg_dir("XDG_CACHE_HOME", ".cache")),
        help="directory holding store.json (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        default=getenv("LOG_LEVEL", "INFO"),
        help="one of " + ", ".join(LogLevel.__members__) + " (default: %(default)s)",
    )
    parser.add_argument(
        "--metrics-textfile",
        default=getenv("METRICS_TEXTFILE"),
        help="write prometheus metrics here for the node_exporter textfile collector",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=_env_number("RETRIES", 0),
        help="retry modem fetch / matrix login this many times with backoff (default: %(default)s)",
    )
    parser.add_argument(
        "--best-effort-notify",
        action="store_true",
        help="log matrix delivery failures and reboot anyway",
    )
    return parser
