import logging
from enum import Enum

PROG_NAME = "surfboard-rebooter"
VERSION = "0.3.0"

DEFAULT_MODEM_URL = "http://192.168.100.1/"
DEFAULT_HOMESERVER = "https://matrix.org/"
DEFAULT_UNCORRECTABLE_THRESHOLD = 1000
DEFAULT_CORRECTABLE_THRESHOLD = 100_000
# Window for an operator to ^C before the modem goes down
DEFAULT_GRACE_SECONDS = 5.0

# Unlikely that the modem cares but it's easy enough to pretend to be a browser just in case
REQUEST_HEADERS = {
    "User-Agent": "Mozilla/5.0 (X11; Linux x86_64; rv:123.4) Gecko/20100101 Firefox/123.4",
    "Accept": "*/*",
    "Accept-Language": "en-US,en;q=0.5",
    "Connection": "keep-alive",
    "Pragma": "no-cache",
    "Cache-Control": "no-cache",
}


class LogLevel(Enum):
    """Simple enum of supported log levels for easy validation"""

    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL
