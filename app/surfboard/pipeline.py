"""
One watchdog run, start to finish.

    gather(status page, matrix session)
        -> over threshold?  no  -> done
        -> gather(notify every room, grace period)
        -> reboot (unless dry run)

There is exactly one place that decides whether to act: evaluate.exceeded().
"""

import asyncio
from enum import Enum

import structlog
from aiohttp import ClientSession, ClientTimeout
from err.exceptions import AuthError, FetchError, NotifyError
from notify.fanout import broadcast
from notify.matrix import MatrixClient
from notify.session import NotificationSession, setup_session
from notify.store import ConfigDir, JsonSessionStore
from surfboard.evaluate import action_description, exceeded, notification_message
from surfboard.parse import ErrorCount, RowExtractor, extract_qam256_rows
from surfboard.scrape import fetch_error_counts, remediate
from util.config import Opts
from util.const import REQUEST_HEADERS

log = structlog.get_logger(__name__)

# The modem can take a while to render the status page right after a reboot
MODEM_TIMEOUT = ClientTimeout(total=30)
BACKOFF_BASE_SECONDS = 1.0


class Outcome(Enum):
    NO_ACTION = "no_action"
    CANCELLED = "cancelled"
    DRY_RUN = "dry_run"
    REMEDIATED = "remediated"


def backoff_delay(attempt: int) -> float:
    """1s, 2s, 4s ... for attempt 0, 1, 2 ..."""
    return BACKOFF_BASE_SECONDS * 2**attempt


async def with_retries(op, retries: int, what: str):
    """Await op() and retry FetchError/AuthError up to `retries` times with exponential backoff."""
    attempt = 0
    while True:
        try:
            return await op()
        except (FetchError, AuthError) as e:
            if attempt >= retries:
                raise
            delay = backoff_delay(attempt)
            attempt += 1
            log.warning(
                f"{what} failed; retrying in {delay} seconds",
                attempt=attempt,
                retries=retries,
                error=str(e),
            )
            await asyncio.sleep(delay)


async def grace_period(seconds: float, cancel: asyncio.Event) -> bool:
    """Wait out the grace period. Returns True if `cancel` was set before it ran out."""
    print("pausing for cancel....")
    try:
        await asyncio.wait_for(cancel.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return False
    return True


async def _gather_counts_and_session(
    opts: Opts,
    cs: ClientSession,
    client_factory,
    extractor: RowExtractor,
) -> tuple[ErrorCount, NotificationSession]:
    store = JsonSessionStore.in_cache_dir(opts.cache_dir)
    config_dir = ConfigDir(opts.config_dir)

    fetch = asyncio.create_task(
        with_retries(
            lambda: fetch_error_counts(cs, opts.modem_url, extractor),
            opts.retries,
            "Status page fetch",
        )
    )
    setup = asyncio.create_task(
        with_retries(
            lambda: setup_session(
                opts.homeserver, config_dir, store, opts.notify, client_factory=client_factory
            ),
            opts.retries,
            "Matrix login",
        )
    )
    try:
        counts, session = await asyncio.gather(fetch, setup)
    except BaseException:
        # First failure wins; don't leave the other half running or a client open
        for task in (fetch, setup):
            task.cancel()
        await asyncio.gather(fetch, setup, return_exceptions=True)
        if setup.done() and not setup.cancelled() and setup.exception() is None:
            await setup.result().close()
        raise
    return counts, session


async def _notify(session: NotificationSession, body: str, opts: Opts) -> int:
    try:
        return await broadcast(session, body, opts.notify)
    except NotifyError as e:
        if not opts.best_effort_notify:
            raise
        log.error("Failed to notify; carrying on with the reboot", error=str(e))
        return 0


async def run(
    opts: Opts,
    cs: ClientSession | None = None,
    client_factory=MatrixClient,
    extractor: RowExtractor = extract_qam256_rows,
    cancel: asyncio.Event | None = None,
) -> Outcome:
    """Do one check-and-maybe-reboot pass.

    `cs` and `client_factory` are injectable so the modem and the homeserver can be faked.
    `cancel` is the only way to stop between notifying and rebooting short of killing the process.

    Raises:
        ModemWatchError: whatever went wrong first; see err.exceptions
    """
    own_cs = cs is None
    if own_cs:
        cs = ClientSession(headers=REQUEST_HEADERS, timeout=MODEM_TIMEOUT)
    if cancel is None:
        cancel = asyncio.Event()

    session = None
    try:
        counts, session = await _gather_counts_and_session(opts, cs, client_factory, extractor)
        print(f"found {counts.correctable} correctable errors")
        print(f"found {counts.uncorrectable} uncorrectable errors")

        if not exceeded(counts, opts.thresholds):
            log.info(
                "Error counts below thresholds; nothing to do",
                correctable=counts.correctable,
                uncorrectable=counts.uncorrectable,
            )
            return Outcome.NO_ACTION

        body = notification_message(counts, opts.remediation)
        log.warning("Error threshold reached", correctable=counts.correctable, uncorrectable=counts.uncorrectable)
        print(body)
        results = await asyncio.gather(
            _notify(session, body, opts),
            grace_period(opts.grace_seconds, cancel),
            return_exceptions=True,
        )
        # Both halves have finished; now surface whichever failed
        for result in results:
            if isinstance(result, BaseException):
                raise result
        _, cancelled = results
        if cancelled:
            log.warning("Reboot cancelled during grace period")
            return Outcome.CANCELLED

        print(action_description(opts.remediation))
        if await remediate(cs, opts.modem_url, opts.remediation):
            return Outcome.REMEDIATED
        return Outcome.DRY_RUN
    finally:
        if session is not None:
            await session.close()
        if own_cs:
            await cs.close()
