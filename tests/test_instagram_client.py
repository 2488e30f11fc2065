"""Tests for the Instagram Graph API client."""

from unittest.mock import patch

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from src.bot.sent_messages import SentMessageRecord
from src.instagram.client import InstagramAPIError, InstagramClient, UserProfile, split_message

# -- split_message ----------------------------------------------------------


def test_short_text_single_chunk():
    assert split_message("hello", 100) == ["hello"]


def test_prefers_sentence_break():
    text = "First sentence here. Second sentence is a bit longer than the first."
    chunks = split_message(text, 30)
    assert chunks[0] == "First sentence here."
    assert all(len(c) <= 30 for c in chunks)
    assert " ".join(chunks) == text


def test_falls_back_to_space():
    text = "word " * 30
    chunks = split_message(text.strip(), 22)
    assert all(len(c) <= 22 for c in chunks)
    assert all(not c.startswith(" ") and not c.endswith(" ") for c in chunks)
    assert " ".join(chunks) == text.strip()


def test_hard_cut_without_spaces():
    text = "x" * 50
    chunks = split_message(text, 20)
    assert all(len(c) <= 20 for c in chunks)
    assert "".join(chunks) == text


def test_default_chunk_size_under_instagram_limit():
    text = ("This is a sentence. " * 200).strip()
    chunks = split_message(text)
    assert len(chunks) > 1
    assert all(len(c) <= 1900 for c in chunks)


# -- Fake Graph API ---------------------------------------------------------


class FakeGraphAPI:
    def __init__(self) -> None:
        self.posts: list[dict] = []
        self.fail_status: int | None = None
        self._counter = 0

    def app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/me/messages", self._messages)
        app.router.add_get("/{user_id}", self._profile)
        return app

    async def _messages(self, request: web.Request) -> web.Response:
        assert request.query["access_token"] == "token"
        payload = await request.json()
        self.posts.append(payload)
        if self.fail_status:
            return web.json_response({"error": {"message": "bad"}}, status=self.fail_status)
        if "sender_action" in payload:
            return web.json_response({"recipient_id": payload["recipient"]["id"]})
        self._counter += 1
        return web.json_response({"recipient_id": "1789", "message_id": f"mid.out{self._counter}"})

    async def _profile(self, request: web.Request) -> web.Response:
        if self.fail_status:
            return web.json_response({"error": {}}, status=self.fail_status)
        assert request.query["fields"] == "name,username"
        return web.json_response(
            {"id": request.match_info["user_id"], "name": "Juan", "username": "juan.dc"}
        )


@pytest.fixture
async def graph():
    api = FakeGraphAPI()
    server = TestServer(api.app())
    await server.start_server()
    api.url = str(server.make_url("")).rstrip("/")
    yield api
    await server.close()


@pytest.fixture
async def client(graph):
    record = SentMessageRecord()
    ig = InstagramClient(record, access_token="token", base_url=graph.url, chunk_size=40)
    yield ig
    await ig.close()


# -- InstagramClient --------------------------------------------------------


async def test_send_message_registers_id(graph, client):
    message_id = await client.send_message("1789", "Hello!")

    assert message_id == "mid.out1"
    assert "mid.out1" in client._sent_record
    assert graph.posts == [
        {
            "recipient": {"id": "1789"},
            "message": {"text": "Hello!"},
            "messaging_type": "RESPONSE",
        }
    ]


async def test_long_message_registers_every_chunk(graph, client):
    text = "Thanks for asking about the course. " * 4
    expected = split_message(text.strip(), 40)
    with patch("src.instagram.client.CHUNK_DELAY_SECONDS", 0):
        message_id = await client.send_message("1789", text.strip())

    assert len(expected) > 1
    assert [p["message"]["text"] for p in graph.posts] == expected
    assert message_id == f"mid.out{len(expected)}"
    for i in range(1, len(expected) + 1):
        assert f"mid.out{i}" in client._sent_record


async def test_send_message_error_raises(graph, client):
    graph.fail_status = 400
    with pytest.raises(InstagramAPIError) as exc_info:
        await client.send_message("1789", "Hello!")
    assert exc_info.value.status == 400
    assert len(client._sent_record) == 0


async def test_send_typing(graph, client):
    await client.send_typing("1789", True)
    await client.send_typing("1789", False)

    assert [p["sender_action"] for p in graph.posts] == ["typing_on", "typing_off"]


async def test_send_typing_failure_is_swallowed(graph, client):
    graph.fail_status = 500
    await client.send_typing("1789", True)


async def test_get_user_profile(graph, client):
    profile = await client.get_user_profile("1789")
    assert profile == UserProfile(id="1789", name="Juan", username="juan.dc")


async def test_get_user_profile_failure_returns_bare_profile(graph, client):
    graph.fail_status = 404
    profile = await client.get_user_profile("1789")
    assert profile == UserProfile(id="1789")
    assert profile.display_name == "1789"
