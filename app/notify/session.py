"""
Getting a usable Matrix client.

Order of preference:
    1. notifications off -> hand back a client that never logged in
    2. a login saved in store.json -> restore it, and check the token still works with one whoami call
    3. log in with <config>/config, sync once, accept every pending invite, save the login

A saved token the homeserver no longer accepts (device logged out, token purged) is dropped and we fall through
to step 3, which also overwrites store.json.

Step 3 is how rooms get "subscribed": invite the bot account to a room and it shows up on the next login.
"""

import structlog
from err.exceptions import AuthError, NotifyError
from notify.matrix import MatrixClient
from notify.store import ConfigDir, JsonSessionStore, StoredSession

log = structlog.get_logger(__name__)


class NotificationSession:
    """A Matrix client plus the store that remembers its login."""

    def __init__(self, client: MatrixClient, store: JsonSessionStore):
        self.client = client
        self.store = store

    @property
    def logged_in(self) -> bool:
        return self.client.logged_in

    async def joined_room_ids(self) -> list[str]:
        return await self.client.joined_rooms(error=NotifyError)

    async def send_text(self, room_id: str, body: str, txn_id: str) -> None:
        """Send a plain m.text message. `txn_id` lets the homeserver drop a duplicate if this is ever retried."""
        event_id = await self.client.room_send(
            room_id,
            content={"msgtype": "m.text", "body": body},
            txn_id=txn_id,
            error=NotifyError,
        )
        log.debug("Sent notification", room_id=room_id, event_id=event_id)

    async def close(self) -> None:
        await self.client.close()


async def _token_still_valid(client: MatrixClient) -> bool:
    try:
        await client.whoami()
    except AuthError as e:
        if e.status_code == 401 or e.payload == "M_UNKNOWN_TOKEN":
            return False
        raise
    return True


async def _login(client: MatrixClient, config_dir: ConfigDir, homeserver: str) -> StoredSession:
    creds = await config_dir.read_credentials()
    log.info("Logging in to matrix", user=creds.username, homeserver=homeserver)
    await client.login(
        creds.username,
        creds.password,
        device_id=creds.device_id,
        device_name=creds.device_name,
    )

    await client.sync(full_state=True)
    for room_id in client.invited_rooms:
        print(f"joining room: {room_id}")
        await client.join(room_id)

    return StoredSession(
        homeserver=homeserver,
        user_id=client.user_id,
        device_id=client.device_id,
        access_token=client.access_token,
    )


async def setup_session(
    homeserver: str,
    config_dir: ConfigDir,
    store: JsonSessionStore,
    notify: bool,
    client_factory=MatrixClient,
) -> NotificationSession:
    """Build the notification session for this run.

    Raises:
        AuthError: login, sync or join failed, or the homeserver was unreachable while checking a saved token
        ConfigError: no usable credentials file
        StoreError: couldn't read/write the store or the config dir
    """
    await store.open()
    client = client_factory(homeserver)
    session = NotificationSession(client, store)
    if not notify:
        log.debug("Notifications disabled; not logging in")
        return session

    try:
        await config_dir.ensure_session_marker()

        saved = await store.load()
        if saved is not None and saved.homeserver == homeserver:
            client.restore_login(saved.user_id, saved.device_id, saved.access_token)
            if await _token_still_valid(client):
                log.debug("Restored matrix session", user_id=saved.user_id)
                return session
            log.warning("Saved matrix login was rejected; logging in again", user_id=saved.user_id)
            client.forget_login()

        log.info("matrix client not logged in")
        await store.save(await _login(client, config_dir, homeserver))
    except BaseException:
        await client.close()
        raise
    return session
