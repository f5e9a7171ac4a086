"""
The two HTTP conversations we have with the modem: read the status page, and tell it to reboot.

Unlike the SB8200 there is no auth on the SB6183 status page or the config handler; anything on the LAN side can
reboot it. Not my design.
"""

import asyncio
from urllib.parse import urljoin

import structlog
from aiohttp import ClientError, ClientSession
from err.exceptions import FetchError, RemediationError
from surfboard import metrics
from surfboard.parse import ErrorCount, RowExtractor, count_errors, extract_qam256_rows
from util.config import RemediationRequest

log = structlog.get_logger(__name__)

STATUS_ENDPOINT = ""
REBOOT_ENDPOINT = "goform/RgConfiguration.pl"


async def fetch_status_page(cs: ClientSession, base_url: str) -> str:
    """GET the modem's root document.

    Raises:
        FetchError: on connection problems or anything other than a 200
    """
    url = urljoin(base_url, STATUS_ENDPOINT)
    log.debug("Requesting status page", url=url)
    with metrics.s_meta_request_time.labels("status_page").time():
        try:
            async with cs.request(method="GET", url=url) as resp:
                metrics.c_meta_request_result.labels(resp.status, "status_page").inc()
                if resp.status != 200:
                    raise FetchError(
                        f"Failed to get status page from {url}", status_code=resp.status
                    )
                # Older firmware serves Latin-1 bits (the copyright footer) without saying so
                return await resp.text(errors="replace")
        except (ClientError, asyncio.TimeoutError) as e:
            metrics.c_meta_request_result.labels("error", "status_page").inc()
            raise FetchError(f"Failed to get status page from {url}: {e!r}") from e


async def fetch_error_counts(
    cs: ClientSession,
    base_url: str,
    extractor: RowExtractor = extract_qam256_rows,
) -> ErrorCount:
    """Fetch the status page and sum up the downstream error counters.

    Raises:
        FetchError: see fetch_status_page()
        ParseError: a downstream row had counters we couldn't read
    """
    page = await fetch_status_page(cs, base_url)
    counts = count_errors(page, extractor)
    metrics.record_counts(counts.correctable, counts.uncorrectable, counts.channels)
    return counts


async def remediate(cs: ClientSession, base_url: str, request: RemediationRequest) -> bool:
    """Ask the modem to reboot (and maybe factory reset). Returns True if a request was actually sent.

    The form fields are what the "Reboot" / "Restore Factory Defaults" buttons on the config page submit.

    Raises:
        RemediationError: on connection problems or a non-2xx reply
    """
    reset_field, reset_value = request.reset_arg
    metrics.c_remediation.labels(str(request.reset).lower(), str(request.dry_run).lower()).inc()
    if request.dry_run:
        log.info("Dry run; not sending reboot", reset=request.reset)
        return False

    url = urljoin(base_url, REBOOT_ENDPOINT)
    form = {"Rebooting": "1", reset_field: reset_value}
    log.warning("Sending reboot to modem", url=url, reset=request.reset)
    with metrics.s_meta_request_time.labels("reboot").time():
        try:
            async with cs.request(method="POST", url=url, data=form) as resp:
                metrics.c_meta_request_result.labels(resp.status, "reboot").inc()
                if not 200 <= resp.status < 300:
                    raise RemediationError(
                        "Modem did not accept reboot request", status_code=resp.status
                    )
        except (ClientError, asyncio.TimeoutError) as e:
            metrics.c_meta_request_result.labels("error", "reboot").inc()
            raise RemediationError(f"Failed to send reboot request: {e!r}") from e
    return True
