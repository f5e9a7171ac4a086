"""Failure states for a watchdog run. Everything here is fatal unless the caller opts into retries / best-effort notify."""


class ModemWatchError(Exception):
    """Base for every error the pipeline knows how to report."""

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message, status_code, payload)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def __str__(self):
        if self.status_code is not None:
            return f"{self.message} (status={self.status_code})"
        return str(self.message)


class FetchError(ModemWatchError):
    """Exception for transport errors or non-200/OK responses from the status page."""


class ParseError(ModemWatchError):
    """Exception for a status page that does not look the way we expect."""


class AuthError(ModemWatchError):
    """Exception for Matrix login / sync / join failures."""


class NotifyError(ModemWatchError):
    """Exception for a Matrix message that could not be delivered."""


class RemediationError(ModemWatchError):
    """Exception for a reboot/reset POST that failed."""


class ConfigError(ModemWatchError):
    """Exception for invalid CLI values or a missing/incomplete credentials file."""


class StoreError(ModemWatchError):
    """Exception for file-system failures on the session store or config dir."""
