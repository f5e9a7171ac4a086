"""
The handful of Matrix client-server API calls we need, straight over aiohttp.

No encryption, no sync loop, no room state; notifications go to unencrypted rooms as plain m.text. See
https://spec.matrix.org/latest/client-server-api/ for the endpoints.
"""

import asyncio
from urllib.parse import quote, urljoin

import structlog
from aiohttp import ClientError, ClientSession, ClientTimeout
from err.exceptions import AuthError, ModemWatchError

log = structlog.get_logger(__name__)

API_PREFIX = "_matrix/client/v3/"

# The initial sync with full_state can be slow on a busy account
HOMESERVER_TIMEOUT = ClientTimeout(total=60)


def _room(room_id: str) -> str:
    # Room IDs look like `!abc:example.org`; both the `!` and the `:` need escaping in a path
    return quote(room_id, safe="")


class MatrixClient:
    """Bare bones Matrix client. Keeps a login (user id, device id, access token) and nothing else."""

    def __init__(self, homeserver: str, cs: ClientSession | None = None):
        self.homeserver = homeserver
        self._own_cs = cs is None
        self._cs = cs if cs is not None else ClientSession(timeout=HOMESERVER_TIMEOUT)
        self.user_id: str | None = None
        self.device_id: str | None = None
        self.access_token: str | None = None
        # Filled in by sync()
        self.invited_rooms: list[str] = []

    @property
    def logged_in(self) -> bool:
        return self.access_token is not None

    def restore_login(self, user_id: str, device_id: str, access_token: str) -> None:
        self.user_id = user_id
        self.device_id = device_id
        self.access_token = access_token

    def forget_login(self) -> None:
        self.user_id = self.device_id = self.access_token = None

    async def _request(
        self,
        method: str,
        path: str,
        error: type[ModemWatchError] = AuthError,
        json: dict | None = None,
        params: dict | None = None,
    ) -> dict:
        """Make one API call and return the decoded body.

        Anything other than a 200 (or no response at all) becomes `error`, carrying the Matrix errcode.
        """
        url = urljoin(self.homeserver, API_PREFIX + path)
        headers = {}
        if self.access_token is not None:
            headers["Authorization"] = f"Bearer {self.access_token}"
        try:
            async with self._cs.request(
                method=method, url=url, json=json, params=params, headers=headers
            ) as resp:
                try:
                    body = await resp.json(content_type=None)
                except ValueError:
                    body = None
                if resp.status != 200:
                    detail = body if isinstance(body, dict) else {}
                    raise error(
                        f"{method} {path}: {detail.get('error', 'unexpected response')}",
                        status_code=resp.status,
                        payload=detail.get("errcode"),
                    )
        except (ClientError, asyncio.TimeoutError) as e:
            raise error(f"{method} {path}: can't reach {self.homeserver}: {e!r}") from e
        if not isinstance(body, dict):
            raise error(f"{method} {path}: response is not a JSON object", status_code=resp.status)
        return body

    async def login(
        self,
        username: str,
        password: str,
        device_id: str | None = None,
        device_name: str | None = None,
    ) -> dict:
        """Password login. On success the client is logged in and the response is returned for saving.

        Raises:
            AuthError: bad credentials, or the homeserver is unreachable
        """
        payload = {
            "type": "m.login.password",
            "identifier": {"type": "m.id.user", "user": username},
            "password": password,
        }
        if device_id is not None:
            payload["device_id"] = device_id
        if device_name is not None:
            payload["initial_device_display_name"] = device_name

        resp = await self._request("POST", "login", json=payload)
        try:
            self.restore_login(resp["user_id"], resp["device_id"], resp["access_token"])
        except KeyError as e:
            raise AuthError(f"Login response is missing {e}", payload=resp) from e
        return resp

    async def whoami(self) -> str:
        """Ask the homeserver who the current access token belongs to.

        Raises:
            AuthError: the token was rejected (401, `M_UNKNOWN_TOKEN`), or the homeserver is unreachable
        """
        resp = await self._request("GET", "account/whoami")
        return resp.get("user_id", "")

    async def sync(self, timeout_ms: int = 0, full_state: bool = True) -> dict:
        params = {"timeout": str(timeout_ms), "full_state": "true" if full_state else "false"}
        resp = await self._request("GET", "sync", params=params)
        self.invited_rooms = list(resp.get("rooms", {}).get("invite", {}))
        return resp

    async def join(self, room_id: str) -> str:
        resp = await self._request("POST", f"join/{_room(room_id)}", json={})
        return resp.get("room_id", room_id)

    async def joined_rooms(self, error: type[ModemWatchError] = AuthError) -> list[str]:
        resp = await self._request("GET", "joined_rooms", error=error)
        return list(resp.get("joined_rooms", []))

    async def room_send(
        self,
        room_id: str,
        content: dict,
        txn_id: str,
        event_type: str = "m.room.message",
        error: type[ModemWatchError] = AuthError,
    ) -> str:
        """PUT an event. The homeserver treats a repeated `txn_id` from the same device as the same event."""
        path = f"rooms/{_room(room_id)}/send/{event_type}/{quote(txn_id, safe='')}"
        resp = await self._request("PUT", path, error=error, json=content)
        return resp.get("event_id", "")

    async def close(self) -> None:
        if self._own_cs:
            await self._cs.close()
