"""Tests for notify/matrix.py."""

import aiohttp
import pytest
from err.exceptions import AuthError, NotifyError
from notify.matrix import MatrixClient

HS = "https://matrix.example.org/"


def login_body():
    return {"user_id": "@modem:example.org", "device_id": "MODEMBOT", "access_token": "syt_secret"}


class TestLogin:
    @pytest.mark.asyncio
    async def test_password_login(self, fake_http, response):
        cs = fake_http(response(json_body=login_body()))
        client = MatrixClient(HS, cs=cs)

        await client.login("modem", "hunter2", device_id="MODEMBOT", device_name="Modem watchdog")

        assert client.logged_in
        assert client.access_token == "syt_secret"
        kwargs = cs.request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert kwargs["url"] == "https://matrix.example.org/_matrix/client/v3/login"
        assert kwargs["json"] == {
            "type": "m.login.password",
            "identifier": {"type": "m.id.user", "user": "modem"},
            "password": "hunter2",
            "device_id": "MODEMBOT",
            "initial_device_display_name": "Modem watchdog",
        }
        assert "Authorization" not in kwargs["headers"]

    @pytest.mark.asyncio
    async def test_optional_fields_left_out(self, fake_http, response):
        cs = fake_http(response(json_body=login_body()))

        await MatrixClient(HS, cs=cs).login("modem", "hunter2")

        body = cs.request.call_args.kwargs["json"]
        assert "device_id" not in body
        assert "initial_device_display_name" not in body

    @pytest.mark.asyncio
    async def test_forbidden_is_auth_error(self, fake_http, response):
        cs = fake_http(
            response(status=403, json_body={"errcode": "M_FORBIDDEN", "error": "Invalid password"})
        )
        client = MatrixClient(HS, cs=cs)

        with pytest.raises(AuthError) as exc_info:
            await client.login("modem", "wrong")

        assert exc_info.value.status_code == 403
        assert exc_info.value.payload == "M_FORBIDDEN"
        assert "Invalid password" in str(exc_info.value)
        assert not client.logged_in

    @pytest.mark.asyncio
    async def test_unreachable_is_auth_error(self, fake_http):
        cs = fake_http(aiohttp.ClientConnectionError("Connection refused"))

        with pytest.raises(AuthError):
            await MatrixClient(HS, cs=cs).login("modem", "hunter2")

    @pytest.mark.asyncio
    async def test_incomplete_response_is_auth_error(self, fake_http, response):
        cs = fake_http(response(json_body={"user_id": "@modem:example.org"}))

        with pytest.raises(AuthError):
            await MatrixClient(HS, cs=cs).login("modem", "hunter2")


class TestWhoami:
    @pytest.mark.asyncio
    async def test_sends_saved_token(self, fake_http, response):
        cs = fake_http(response(json_body={"user_id": "@modem:example.org", "device_id": "MODEMBOT"}))
        client = MatrixClient(HS, cs=cs)
        client.restore_login("@modem:example.org", "MODEMBOT", "syt_secret")

        assert await client.whoami() == "@modem:example.org"

        kwargs = cs.request.call_args.kwargs
        assert kwargs["method"] == "GET"
        assert kwargs["url"] == "https://matrix.example.org/_matrix/client/v3/account/whoami"
        assert kwargs["headers"] == {"Authorization": "Bearer syt_secret"}

    @pytest.mark.asyncio
    async def test_unknown_token(self, fake_http, response):
        cs = fake_http(
            response(status=401, json_body={"errcode": "M_UNKNOWN_TOKEN", "error": "Invalid access token"})
        )
        client = MatrixClient(HS, cs=cs)
        client.restore_login("@modem:example.org", "MODEMBOT", "syt_revoked")

        with pytest.raises(AuthError) as exc_info:
            await client.whoami()

        assert exc_info.value.status_code == 401
        assert exc_info.value.payload == "M_UNKNOWN_TOKEN"

    def test_forget_login(self):
        client = MatrixClient(HS, cs=object())
        client.restore_login("@modem:example.org", "MODEMBOT", "syt_secret")

        client.forget_login()

        assert not client.logged_in
        assert client.user_id is None


class TestRooms:
    @pytest.mark.asyncio
    async def test_sync_collects_invites(self, fake_http, response):
        body = {"rooms": {"invite": {"!a:example.org": {}, "!b:example.org": {}}, "join": {}}}
        cs = fake_http(response(json_body=body))
        client = MatrixClient(HS, cs=cs)
        client.restore_login("@modem:example.org", "MODEMBOT", "syt_secret")

        await client.sync()

        assert client.invited_rooms == ["!a:example.org", "!b:example.org"]
        kwargs = cs.request.call_args.kwargs
        assert kwargs["params"] == {"timeout": "0", "full_state": "true"}
        assert kwargs["headers"] == {"Authorization": "Bearer syt_secret"}

    @pytest.mark.asyncio
    async def test_sync_without_rooms(self, fake_http, response):
        client = MatrixClient(HS, cs=fake_http(response(json_body={"next_batch": "s1"})))

        await client.sync()

        assert client.invited_rooms == []

    @pytest.mark.asyncio
    async def test_join_escapes_room_id(self, fake_http, response):
        cs = fake_http(response(json_body={"room_id": "!a:example.org"}))

        await MatrixClient(HS, cs=cs).join("!a:example.org")

        assert cs.request.call_args.kwargs["url"] == (
            "https://matrix.example.org/_matrix/client/v3/join/%21a%3Aexample.org"
        )

    @pytest.mark.asyncio
    async def test_joined_rooms(self, fake_http, response):
        cs = fake_http(response(json_body={"joined_rooms": ["!a:example.org"]}))

        assert await MatrixClient(HS, cs=cs).joined_rooms() == ["!a:example.org"]

    @pytest.mark.asyncio
    async def test_room_send_uses_txn_id(self, fake_http, response):
        cs = fake_http(response(json_body={"event_id": "$ev"}))
        content = {"msgtype": "m.text", "body": "hi"}

        event_id = await MatrixClient(HS, cs=cs).room_send("!a:example.org", content, "txn-1")

        assert event_id == "$ev"
        kwargs = cs.request.call_args.kwargs
        assert kwargs["method"] == "PUT"
        assert kwargs["url"].endswith("/rooms/%21a%3Aexample.org/send/m.room.message/txn-1")
        assert kwargs["json"] == content

    @pytest.mark.asyncio
    async def test_room_send_error_class(self, fake_http, response):
        cs = fake_http(response(status=429, json_body={"errcode": "M_LIMIT_EXCEEDED", "error": "slow down"}))

        with pytest.raises(NotifyError):
            await MatrixClient(HS, cs=cs).room_send("!a:example.org", {}, "txn", error=NotifyError)

    @pytest.mark.asyncio
    async def test_non_json_error_body(self, fake_http, response):
        resp = response(status=502)
        resp.json.side_effect = ValueError("not json")

        with pytest.raises(AuthError) as exc_info:
            await MatrixClient(HS, cs=fake_http(resp)).joined_rooms()
        assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_close_leaves_borrowed_session_open(fake_http):
    cs = fake_http()

    await MatrixClient(HS, cs=cs).close()

    cs.close.assert_not_called()
