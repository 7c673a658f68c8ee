"""Mode commands: map slash commands and correction phrases to state mutations."""

import sys
from datetime import datetime
from typing import Dict, Optional

from voicereply.domain.models import AUTO, TEXT, VOICE
from voicereply.interaction_state import InteractionStateStore


def _log(msg: str):
    print(msg, file=sys.stderr)


DEFAULT_OVERRIDE_MINUTES = 60
MAX_OVERRIDE_MINUTES = 7 * 24 * 60
CORRECTION_OVERRIDE_MINUTES = 60

# Normalize correction phrases to the modality the user asked for
_CORRECTION_ALIASES: Dict[str, str] = {
    "用文字": TEXT,
    "发文字": TEXT,
    "打字吧": TEXT,
    "别发语音": TEXT,
    "不要语音": TEXT,
    "send text": TEXT,
    "text please": TEXT,
    "type it": TEXT,
    "用语音": VOICE,
    "发语音": VOICE,
    "说话": VOICE,
    "念给我听": VOICE,
    "send voice": VOICE,
    "voice please": VOICE,
    "say it": VOICE,
}

_LABELS = {VOICE: "语音 voice", TEXT: "文字 text", AUTO: "自动 auto"}


def _parse_minutes(arg: str) -> Optional[int]:
    """Minutes for an override; None means no expiry. Raises ValueError on junk or out-of-range values."""
    if not arg:
        return DEFAULT_OVERRIDE_MINUTES
    if arg in ("0", "forever", "永久"):
        return None
    minutes = int(arg)
    if minutes < 1 or minutes > MAX_OVERRIDE_MINUTES:
        raise ValueError(arg)
    return minutes


def _normalize(text: str) -> str:
    return text.strip().lower().rstrip("!！。.~～ ")


def handle_mode_command(text: str, store: InteractionStateStore, now: Optional[datetime] = None) -> Optional[str]:
    """Apply a mode command or correction phrase. Returns a reply, or None if *text* is neither."""
    normalized = _normalize(text)
    if not normalized:
        return None

    if normalized.startswith("/"):
        parts = normalized[1:].split()
        if not parts:
            return None
        cmd, args = parts[0], parts[1:]

        if cmd == "auto":
            store.set_temporary_mode(AUTO, now=now)
            if args and args[0] == "reset":
                store.clear_corrections()
                _log("[Commands] mode -> auto, corrections cleared")
                return "已切换为自动模式，并清除了学习记录 (auto mode, history cleared)"
            _log("[Commands] mode -> auto")
            return f"已切换为{_LABELS[AUTO]}模式"

        if cmd in (VOICE, TEXT):
            try:
                minutes = _parse_minutes(args[0] if args else "")
            except ValueError:
                return f"用法 usage: /{cmd} [minutes (1-{MAX_OVERRIDE_MINUTES})|forever]"
            duration_ms = minutes * 60 * 1000 if minutes is not None else None
            store.set_temporary_mode(cmd, duration_ms, now=now)
            _log(f"[Commands] mode -> {cmd} for {minutes if minutes is not None else 'ever'} min")
            if minutes is None:
                return f"已切换为{_LABELS[cmd]}模式 (until /auto)"
            return f"已切换为{_LABELS[cmd]}模式 ({minutes} min)"

        return None

    corrected_to = _CORRECTION_ALIASES.get(normalized)
    if corrected_to is None:
        return None

    store.record_correction(corrected_to, now=now)
    store.set_temporary_mode(corrected_to, CORRECTION_OVERRIDE_MINUTES * 60 * 1000, now=now)
    _log(f"[Commands] correction -> {corrected_to}")
    return f"好的，接下来用{_LABELS[corrected_to]}回复"
