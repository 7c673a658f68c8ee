"""Discord webhook transport: posts replies as plain messages or voice attachments."""

import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import aiohttp

from voicereply.domain.models import SynthesisResult


def _log(msg: str):
    print(msg, file=sys.stderr)


MAX_CONTENT = 2000


class WebhookTransport:
    """Text and voice senders bound to one Discord webhook URL.

    Both senders return ``{"status": int, "ok": bool}``; a non-2xx status is
    reported in the result, not raised. The destination argument is kept
    for sender-signature compatibility and used as a thread id when set.
    """

    def __init__(self, webhook_url: str, username: str = "Voice Reply"):
        self.webhook_url = webhook_url
        self.username = username

    def _url(self, destination: Optional[Any]) -> str:
        if destination:
            return f"{self.webhook_url}?thread_id={destination}"
        return self.webhook_url

    async def send_text(self, text: str, destination: Optional[Any] = None) -> Dict[str, Any]:
        """Post *text* in 2000-character messages; stops at the first failed post."""
        result = {"status": 204, "ok": True}
        async with aiohttp.ClientSession() as session:
            # Split long messages
            while text:
                payload = {"username": self.username, "content": text[:MAX_CONTENT]}
                text = text[MAX_CONTENT:]
                async with session.post(self._url(destination), json=payload) as resp:
                    _ = await resp.text()
                    result = {"status": resp.status, "ok": 200 <= resp.status < 300}
                if not result["ok"]:
                    _log(f"[Webhook] text send returned {result['status']}")
                    break
        return result

    async def send_voice(self, result: SynthesisResult, destination: Optional[Any] = None) -> Dict[str, Any]:
        audio = Path(result.audio_path).read_bytes()
        payload = {
            "username": self.username,
            "content": f"🔊 {result.duration_ms / 1000:.1f}s",
        }
        form = aiohttp.FormData()
        form.add_field("payload_json", json.dumps(payload, ensure_ascii=False), content_type="application/json")
        form.add_field("files[0]", audio, filename="voice.opus", content_type="audio/ogg")

        async with aiohttp.ClientSession() as session:
            async with session.post(self._url(destination), data=form) as resp:
                _ = await resp.text()
                if resp.status >= 300:
                    _log(f"[Webhook] voice upload returned {resp.status}")
                else:
                    _log(f"[Webhook] voice sent ({result.duration_ms} ms)")
                return {"status": resp.status, "ok": 200 <= resp.status < 300}
