"""
On-disk state for the Matrix side of things.

Three files, all owned by exactly one run at a time (no locking):
    - <cache>/store.json   the saved login so we don't create a new device on every cron tick
    - <config>/config      username, password, [device id], [device display name]; one per line
    - <config>/session     marker file; only its existence matters

All blocking file-system calls go through a small thread pool so they don't stall the event loop.
"""

import asyncio
import json
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from functools import partial
from pathlib import Path

import structlog
from err.exceptions import ConfigError, StoreError

log = structlog.get_logger(__name__)

# A run touches at most three small files
_IO_POOL = ThreadPoolExecutor(max_workers=2, thread_name_prefix="store-io")


async def run_blocking(fn, *args, **kwargs):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_IO_POOL, partial(fn, *args, **kwargs))


@dataclass(frozen=True)
class StoredSession:
    homeserver: str
    user_id: str
    device_id: str
    access_token: str


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str
    device_id: str | None = None
    device_name: str | None = None


class JsonSessionStore:
    """Saved Matrix login, kept as a single JSON object."""

    def __init__(self, path: Path):
        self.path = Path(path)

    @classmethod
    def in_cache_dir(cls, cache_dir: Path) -> "JsonSessionStore":
        return cls(Path(cache_dir) / "store.json")

    async def open(self) -> None:
        """Create the directory the store lives in. The file itself only appears on the first save()."""
        try:
            await run_blocking(self.path.parent.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Can't create store directory {self.path.parent}: {e}") from e

    async def load(self) -> StoredSession | None:
        """Returns None when nothing has been saved yet.

        Raises:
            StoreError: the file exists but can't be read or doesn't hold a session
        """
        try:
            raw = await run_blocking(self._read)
        except OSError as e:
            raise StoreError(f"Can't read session store {self.path}: {e}") from e
        if raw is None or not raw.strip():
            return None
        try:
            return StoredSession(**json.loads(raw))
        except (ValueError, TypeError) as e:
            raise StoreError(f"Session store {self.path} is corrupt", payload=raw) from e

    async def save(self, session: StoredSession) -> None:
        try:
            await run_blocking(self._write, json.dumps(asdict(session), indent=2))
        except OSError as e:
            raise StoreError(f"Can't write session store {self.path}: {e}") from e
        log.debug("Saved matrix session", path=str(self.path), user_id=session.user_id)

    def _read(self) -> str | None:
        try:
            return self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def _write(self, data: str) -> None:
        # The access token is as good as the password; keep it private and never leave a half written file.
        tmp = self.path.with_suffix(".json.tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp, self.path)


class ConfigDir:
    """The user maintained half: credentials and the session marker."""

    def __init__(self, path: Path):
        self.path = Path(path)

    @property
    def config_file(self) -> Path:
        return self.path / "config"

    @property
    def session_file(self) -> Path:
        return self.path / "session"

    async def ensure_session_marker(self) -> None:
        """Create <config>/session if it's not already there. Existing content is left alone."""
        try:
            await run_blocking(self._touch_session)
        except OSError as e:
            raise StoreError(f"Can't create session file {self.session_file}: {e}") from e

    def _touch_session(self) -> None:
        self.path.mkdir(parents=True, exist_ok=True)
        self.session_file.touch(exist_ok=True)

    async def read_credentials(self) -> Credentials:
        """Read username, password and the optional device id / display name from <config>/config.

        Raises:
            ConfigError: file missing or username empty
            StoreError: any other problem reading the file
        """
        try:
            contents = await run_blocking(self.config_file.read_text, encoding="utf-8")
        except FileNotFoundError as e:
            raise ConfigError(
                f"No matrix credentials; put username and password on separate lines in {self.config_file}"
            ) from e
        except OSError as e:
            raise StoreError(f"Can't read {self.config_file}: {e}") from e

        lines = contents.splitlines()
        # Pad so the optional fields come out as None
        username, password, device_id, device_name = (lines + [None] * 4)[:4]
        if not username:
            raise ConfigError(f"{self.config_file} has no username on its first line")
        return Credentials(
            username=username,
            password=password or "",
            device_id=device_id or None,
            device_name=device_name or None,
        )
