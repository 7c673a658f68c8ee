"""Tests for the Discord webhook transport."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from voicereply import ReplyDispatcher, build_webhook_dispatcher
from voicereply.domain.models import SynthesisResult
from voicereply.webhook import MAX_CONTENT, WebhookTransport

WEBHOOK = "https://discord.com/api/webhooks/1/abc"


def _post_cm(status):
    resp = MagicMock()
    resp.status = status
    resp.text = AsyncMock(return_value="")
    post_cm = MagicMock()
    post_cm.__aenter__ = AsyncMock(return_value=resp)
    post_cm.__aexit__ = AsyncMock(return_value=False)
    return post_cm


def _mock_session(*statuses):
    """ClientSession stand-in: returns (session_cm, session). One status per post."""
    statuses = statuses or (204,)
    session = MagicMock()
    if len(statuses) == 1:
        session.post.return_value = _post_cm(statuses[0])
    else:
        session.post.side_effect = [_post_cm(s) for s in statuses]
    session_cm = MagicMock()
    session_cm.__aenter__ = AsyncMock(return_value=session)
    session_cm.__aexit__ = AsyncMock(return_value=False)
    return session_cm, session


class TestSendText:
    @pytest.mark.asyncio
    async def test_posts_json(self):
        """Short text should go out as one JSON post to the webhook."""
        session_cm, session = _mock_session(204)
        with patch("voicereply.webhook.aiohttp.ClientSession", return_value=session_cm):
            result = await WebhookTransport(WEBHOOK).send_text("你好")

        assert result == {"status": 204, "ok": True}
        url = session.post.call_args.args[0]
        assert url == WEBHOOK
        assert session.post.call_args.kwargs["json"]["content"] == "你好"

    @pytest.mark.asyncio
    async def test_long_text_split_into_posts(self):
        """Nothing past the first 2000 characters should be lost."""
        text = "a" * 2500 + "NOTICE"
        session_cm, session = _mock_session(204)
        with patch("voicereply.webhook.aiohttp.ClientSession", return_value=session_cm):
            result = await WebhookTransport(WEBHOOK).send_text(text)

        assert result["ok"] is True
        contents = [c.kwargs["json"]["content"] for c in session.post.call_args_list]
        assert [len(c) for c in contents] == [MAX_CONTENT, 506]
        assert "".join(contents) == text
        assert contents[-1].endswith("NOTICE")

    @pytest.mark.asyncio
    async def test_stops_after_failed_chunk(self):
        """A rejected chunk should stop the send and be reported."""
        session_cm, session = _mock_session(204, 429)
        with patch("voicereply.webhook.aiohttp.ClientSession", return_value=session_cm):
            result = await WebhookTransport(WEBHOOK).send_text("b" * 5000)

        assert result == {"status": 429, "ok": False}
        assert session.post.call_count == 2

    @pytest.mark.asyncio
    async def test_thread_destination(self):
        """A destination should be passed as the webhook thread id."""
        session_cm, session = _mock_session(204)
        with patch("voicereply.webhook.aiohttp.ClientSession", return_value=session_cm):
            await WebhookTransport(WEBHOOK).send_text("你好", 777)
        assert session.post.call_args.args[0] == f"{WEBHOOK}?thread_id=777"

    @pytest.mark.asyncio
    async def test_error_status_reported_not_raised(self):
        """A non-2xx status should come back in the result."""
        session_cm, _ = _mock_session(429)
        with patch("voicereply.webhook.aiohttp.ClientSession", return_value=session_cm):
            result = await WebhookTransport(WEBHOOK).send_text("你好")
        assert result == {"status": 429, "ok": False}


class TestSendVoice:
    @pytest.mark.asyncio
    async def test_uploads_multipart(self, tmp_path):
        """The opus file should be attached beside a payload_json field."""
        audio = tmp_path / "tts_1.opus"
        audio.write_bytes(b"OggS")
        artifact = SynthesisResult(audio_path=str(audio), duration_ms=2500, model="vits-zh-hf-fanchen-C")

        session_cm, session = _mock_session(200)
        with patch("voicereply.webhook.aiohttp.ClientSession", return_value=session_cm):
            result = await WebhookTransport(WEBHOOK, username="Bot").send_voice(artifact)

        assert result["ok"] is True
        form = session.post.call_args.kwargs["data"]
        assert isinstance(form, aiohttp.FormData)
        fields = {opts["name"]: value for opts, _, value in form._fields}
        assert json.loads(fields["payload_json"]) == {"username": "Bot", "content": "🔊 2.5s"}
        assert fields["files[0]"] == b"OggS"

    @pytest.mark.asyncio
    async def test_missing_artifact_raises(self, tmp_path):
        """A vanished artifact is a caller bug and should raise."""
        artifact = SynthesisResult(audio_path=str(tmp_path / "gone.opus"), duration_ms=1, model="m")
        with pytest.raises(FileNotFoundError):
            await WebhookTransport(WEBHOOK).send_voice(artifact)


class TestWebhookDispatcher:
    def test_wires_transport_senders(self, tmp_path):
        """The dispatcher should send through one transport bound to the URL."""
        dispatcher = build_webhook_dispatcher(
            WEBHOOK,
            config_path=str(tmp_path / "skill.json"),
            state_file=str(tmp_path / "state.json"),
            username="Bot",
        )
        assert isinstance(dispatcher, ReplyDispatcher)
        transport = dispatcher._send_text.__self__
        assert isinstance(transport, WebhookTransport)
        assert dispatcher._send_voice.__self__ is transport
        assert transport.webhook_url == WEBHOOK
        assert transport.username == "Bot"

    @pytest.mark.asyncio
    async def test_text_reply_posted_to_webhook(self, tmp_path):
        """Without a TTS runtime the reply should be posted as text."""
        dispatcher = build_webhook_dispatcher(
            WEBHOOK,
            config_path=str(tmp_path / "skill.json"),
            state_file=str(tmp_path / "state.json"),
        )
        dispatcher.pipeline.is_available = MagicMock(return_value=False)

        session_cm, session = _mock_session(204)
        with patch("voicereply.webhook.aiohttp.ClientSession", return_value=session_cm):
            delivery = await dispatcher.deliver("你好", None)

        assert delivery.modality == "text"
        assert delivery.result == {"status": 204, "ok": True}
        assert session.post.call_args.kwargs["json"]["content"] == "你好"
        assert dispatcher.engine.state_store.load().last_interaction_at is not None
