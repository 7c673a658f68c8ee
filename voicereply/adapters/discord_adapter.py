"""Discord adapter: bridges discord.Client to the reply dispatcher.

DiscordVoiceAdapter supplies the text and voice senders the dispatcher
needs; DiscordReplyBot routes inbound messages: mode commands are answered
directly, everything else goes through a reply callback and is delivered
as voice or text.
"""

import sys
from typing import Awaitable, Callable, Optional

import discord

from voicereply.commands import handle_mode_command
from voicereply.decision import ModalityDecisionEngine
from voicereply.dispatcher import ReplyDispatcher
from voicereply.domain.models import TEXT, VOICE, SynthesisResult
from voicereply.synthesis import SynthesisPipeline


def _log(msg: str):
    print(msg, file=sys.stderr)


ReplyFn = Callable[[str], Awaitable[Optional[str]]]


class DiscordVoiceAdapter:
    """Text and voice senders over a discord.Client."""

    def __init__(self, client: discord.Client):
        self._client = client

    async def send_text(self, text: str, channel_id: int) -> Optional[discord.Message]:
        channel = self._client.get_channel(channel_id)
        if not channel:
            _log(f"[Discord] unknown channel {channel_id}")
            return None
        # Split long messages
        sent = None
        while text:
            sent = await channel.send(text[:2000])
            text = text[2000:]
        return sent

    async def send_voice(self, result: SynthesisResult, channel_id: int) -> Optional[discord.Message]:
        channel = self._client.get_channel(channel_id)
        if not channel:
            _log(f"[Discord] unknown channel {channel_id}")
            return None
        return await channel.send(file=discord.File(result.audio_path, filename="voice.opus"))


def inbound_mode(message: discord.Message) -> str:
    """voice if the message carries an audio attachment, else text."""
    for attachment in message.attachments:
        if (attachment.content_type or "").startswith("audio/"):
            return VOICE
    return TEXT


class DiscordReplyBot(discord.Client):
    """Thin Discord client that answers through the reply dispatcher."""

    def __init__(
        self,
        reply_fn: ReplyFn,
        engine: ModalityDecisionEngine,
        pipeline: SynthesisPipeline,
        **discord_kwargs,
    ):
        intents = discord.Intents.default()
        intents.message_content = True
        super().__init__(intents=intents, **discord_kwargs)
        self._reply_fn = reply_fn
        self.engine = engine
        self.adapter = DiscordVoiceAdapter(self)
        self.dispatcher = ReplyDispatcher(
            engine,
            pipeline,
            send_text=self.adapter.send_text,
            send_voice=self.adapter.send_voice,
        )

    async def on_ready(self):
        _log(f"[Discord] logged in as {self.user}")

    async def on_message(self, message: discord.Message):
        if message.author.bot:
            return

        channel_id = message.channel.id
        command_reply = handle_mode_command(message.content, self.engine.state_store)
        if command_reply is not None:
            await self.adapter.send_text(command_reply, channel_id)
            return

        reply = await self._reply_fn(message.content)
        if not reply:
            return
        delivery = await self.dispatcher.deliver(
            reply,
            channel_id,
            user_message=message.content,
            input_mode=inbound_mode(message),
        )
        _log(f"[Discord] replied in {channel_id} as {delivery.modality}" + (" (fallback)" if delivery.fallback else ""))
