"""Error types raised by the reply-modality core."""

from typing import Optional


class VoiceReplyError(Exception):
    """Base class for voicereply failures surfaced to callers."""


class SynthesisError(VoiceReplyError):
    """A speech engine, transcoder, or prober stage failed."""

    def __init__(self, stage: str, message: str, returncode: Optional[int] = None):
        self.stage = stage  # "tts" | "transcode" | "probe"
        self.returncode = returncode
        super().__init__(f"{stage}: {message}")
