"""
Pulls the downstream error counters out of the modem's status page.

Same story as the SB8200: the HTML isn't well formed enough to be worth a real parser. Each downstream channel
is a single line that looks like:

    <tr><td>1</td><td>Locked</td><td>QAM256</td><td>8</td><td>405000000 Hz</td><td>4.6 dBmV</td><td>39.8 dB</td><td>13</td><td>0</td></tr>

so we split each line on the tag pairs between cells and go by position.
"""

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass

import structlog
from err.exceptions import ParseError

log = structlog.get_logger(__name__)

# `</td><td>`, `<tr><td>`, `</td></tr>` ... anything that marks a row/cell transition
CELL_BOUNDARY = re.compile(r"</?t[rd]></?t[rd]>")

LOCKED = "Locked"
MODULATION = "QAM256"

# Extracts the (correctable, uncorrectable) pair from every qualifying row of a page.
RowExtractor = Callable[[str], Iterable[tuple[int, int]]]


@dataclass(frozen=True)
class ErrorCount:
    correctable: int = 0
    uncorrectable: int = 0
    # number of rows that went into the sums; informational only
    channels: int = 0


def split_fields(line: str) -> list[str]:
    """Split one line of the status page into its cell fields.

    The leading `<tr><td>` and trailing `</td></tr>` leave an empty field at each end, so for a channel row
    field 2 is the lock status, field 3 is the modulation and the counters sit just before the last field.
    """
    return CELL_BOUNDARY.split(line)


def is_downstream_row(fields: list[str]) -> bool:
    return len(fields) > 5 and fields[2] == LOCKED and fields[3] == MODULATION


def _as_count(raw: str, line_no: int, column: str) -> int:
    value = raw.strip()
    # int() would happily take "-3", "+3" or "1_000"
    if not value.isascii() or not value.isdigit():
        raise ParseError(
            f"line {line_no}: {column} count is not a non-negative integer",
            payload=raw,
        )
    return int(value)


def extract_qam256_rows(page: str) -> Iterable[tuple[int, int]]:
    """Yield (correctable, uncorrectable) for every locked QAM256 downstream row in the page."""
    for line_no, line in enumerate(page.split("\n"), start=1):
        fields = split_fields(line)
        if not is_downstream_row(fields):
            continue
        yield (
            _as_count(fields[-3], line_no, "correctable"),
            _as_count(fields[-2], line_no, "uncorrectable"),
        )


def count_errors(page: str, extractor: RowExtractor = extract_qam256_rows) -> ErrorCount:
    """Sum the per-channel error counters across the whole page.

    Raises:
        ParseError: a qualifying row had counters that aren't integers
    """
    correctable = uncorrectable = channels = 0
    for c, u in extractor(page):
        correctable += c
        uncorrectable += u
        channels += 1

    if channels == 0:
        # Either the modem has no lock at all or the page changed under us (firmware update?!)
        log.warning("No locked downstream channels found on status page")

    log.debug(
        "Counted errors",
        channels=channels,
        correctable=correctable,
        uncorrectable=uncorrectable,
    )
    return ErrorCount(correctable=correctable, uncorrectable=uncorrectable, channels=channels)
