#!/usr/bin/env python3
"""
Main / entry point for the SB family modem watchdog.

Meant to be run from cron or a systemd timer every few minutes:

    */10 * * * * surfboard-rebooter --count 1000 --correct-count 100000

"""
import asyncio
import sys

import structlog
from err.exceptions import ConfigError, ModemWatchError
from surfboard import metrics
from surfboard.pipeline import run
from util.config import Opts, build_parser
from util.const import LogLevel

log = structlog.get_logger(__name__)


def configure_logging(log_level: LogLevel) -> None:
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(log_level.value)
    )


def main(argv=None) -> int:
    """Parse args, do one run, and turn the result into an exit code."""
    try:
        opts = Opts.from_args(build_parser().parse_args(argv))
    except ConfigError as e:
        configure_logging(LogLevel.INFO)
        log.error("Invalid configuration", error=str(e), value=e.payload)
        return 1
    configure_logging(opts.log_level)
    log.debug("Starting up", modem=opts.modem_url, dry_run=opts.dry_run, notify=opts.notify)

    try:
        outcome = asyncio.run(run(opts))
        log.info("Done", outcome=outcome.value)
        return 0
    except ModemWatchError as e:
        log.error(f"Caught {type(e).__name__}", error=str(e))
        return 1
    except KeyboardInterrupt:
        log.warning("Interrupted")
        return 130
    finally:
        # Written on failure too
        if opts.metrics_textfile is not None:
            try:
                metrics.write_textfile(opts.metrics_textfile)
            except OSError as e:
                log.error("Failed to write metrics textfile", error=str(e))


if __name__ == "__main__":
    sys.exit(main())
