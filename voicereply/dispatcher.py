"""Reply dispatcher: decide the modality, synthesize when voice, degrade to text on failure."""

import asyncio
import sys
from typing import Any, Awaitable, Callable, Optional

from voicereply.decision import ModalityDecisionEngine
from voicereply.domain.models import TEXT, VOICE, Delivery
from voicereply.errors import SynthesisError
from voicereply.synthesis import SynthesisPipeline, VoiceSender


def _log(msg: str):
    print(msg, file=sys.stderr)


FAILURE_NOTICE = "(语音生成失败，已改为文字发送 / voice generation failed, sent as text)"
UPLOAD_FAILURE_NOTICE = "(语音发送失败，已改为文字发送 / voice upload failed, sent as text)"

TextSender = Callable[[str, Any], Awaitable[Any]]


class ReplyDispatcher:
    """Delivers one outbound reply through a transport's text and voice senders.

    Calls are serialized with a lock so the state store's read-modify-write
    cycle is never interleaved within this process.
    """

    def __init__(
        self,
        engine: ModalityDecisionEngine,
        pipeline: SynthesisPipeline,
        send_text: TextSender,
        send_voice: VoiceSender,
    ):
        self.engine = engine
        self.pipeline = pipeline
        self._send_text = send_text
        self._send_voice = send_voice
        self._lock = asyncio.Lock()

    async def deliver(
        self,
        text: str,
        destination: Any,
        user_message: Optional[str] = None,
        input_mode: Optional[str] = None,
    ) -> Delivery:
        """Send *text* as voice or text.

        The interaction is recorded once per call: by ``decide()``, or directly
        when TTS is unavailable. A failed synthesis or an upload result with
        ``ok`` False degrades to text plus a notice; raised transport errors
        propagate.
        """
        async with self._lock:
            if not self.pipeline.is_available():
                self.engine.state_store.record_interaction(input_mode)
                return Delivery(modality=TEXT, result=await self._send_text(text, destination))

            if not self.engine.decide(text, user_message=user_message, input_mode=input_mode):
                return Delivery(modality=TEXT, result=await self._send_text(text, destination))

            try:
                result = await self.pipeline.send_as_voice(text, destination, self._send_voice)
            except SynthesisError as e:
                _log(f"[Dispatcher] voice delivery failed, falling back to text: {e}")
                result = await self._send_text(f"{text}\n\n{FAILURE_NOTICE}", destination)
                return Delivery(modality=TEXT, result=result, fallback=True, error=str(e))

            if isinstance(result, dict) and result.get("ok") is False:
                error = f"voice upload returned {result.get('status')}"
                _log(f"[Dispatcher] {error}, falling back to text")
                result = await self._send_text(f"{text}\n\n{UPLOAD_FAILURE_NOTICE}", destination)
                return Delivery(modality=TEXT, result=result, fallback=True, error=error)
            return Delivery(modality=VOICE, result=result)
