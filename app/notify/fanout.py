import asyncio
from uuid import uuid4

import structlog
from err.exceptions import NotifyError
from notify.session import NotificationSession

log = structlog.get_logger(__name__)


async def broadcast(session: NotificationSession, body: str, notify: bool) -> int:
    """Send `body` once to every room the account has joined. Returns how many rooms were messaged.

    All sends go out at once and every one of them is waited on; the send that failed first (in
    completion order, not room order) is what gets raised.

    Raises:
        NotifyError: listing rooms or any single send failed
    """
    if not notify:
        return 0

    room_ids = await session.joined_room_ids()
    if not room_ids:
        log.warning("Not in any matrix rooms; nobody will be notified")
        return 0

    failures = []

    async def send(room_id: str, txn_id: str) -> None:
        try:
            await session.send_text(room_id, body, txn_id)
        except Exception as e:
            # Appended as they happen, so failures[0] is whichever send failed first
            failures.append((room_id, e))

    sends = []
    for room_id in room_ids:
        # Fresh token per send even though the body is identical
        txn_id = str(uuid4())
        print(f"queueing notification to room: {room_id}")
        sends.append(send(room_id, txn_id))

    await asyncio.gather(*sends)
    if failures:
        room_id, first = failures[0]
        log.error("Failed to notify matrix rooms", failed=[r for r, _ in failures], count=len(room_ids))
        if isinstance(first, NotifyError):
            raise first
        raise NotifyError(f"Failed to send to {room_id}: {first!r}", payload=room_id) from first

    log.info("Notified matrix rooms", count=len(room_ids))
    return len(room_ids)
