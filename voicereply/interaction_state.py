"""Interaction state store: durable record of overrides, input modality, and corrections."""

import json
import os
import sys
from dataclasses import asdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, List, Optional

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from voicereply.domain.models import (
    AUTO,
    MODALITIES,
    MODES,
    Correction,
    InteractionState,
)

MAX_CORRECTIONS = 50


def _log(msg: str):
    print(msg, file=sys.stderr)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO timestamp; naive values are taken as UTC."""
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(value)
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def resolve_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, KeyError):
        _log(f"[InteractionState] unknown timezone {name!r}, using UTC")
        return ZoneInfo("UTC")


class InteractionStateStore:
    """Reads and writes the single InteractionState record for this deployment.

    Every mutating call is load, modify, save. The sequence is not atomic;
    callers running decisions concurrently must serialize per identity.
    """

    def __init__(self, state_file: Optional[str] = None, tz: str = "Asia/Shanghai"):
        self.state_file = Path(
            state_file or os.environ.get("VOICEREPLY_STATE") or "memory/interaction_state.json"
        )
        self.tz = resolve_zone(tz)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def load(self) -> InteractionState:
        """Load persisted state. Missing or corrupt files yield defaults."""
        try:
            if not self.state_file.exists():
                return InteractionState()
            raw = json.loads(self.state_file.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("state root is not an object")
            return self._from_dict(raw)
        except Exception as e:
            _log(f"[InteractionState] load failed: {e}")
            return InteractionState()

    def save(self, state: InteractionState):
        """Persist state to disk. I/O errors are logged, never raised."""
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            tmp = self.state_file.with_suffix(".tmp")
            tmp.write_text(
                json.dumps(asdict(state), ensure_ascii=False, indent=2),
                encoding="utf-8",
            )
            tmp.replace(self.state_file)
        except Exception as e:
            _log(f"[InteractionState] save failed: {e}")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def record_interaction(self, input_mode: Optional[str] = None, now: Optional[datetime] = None) -> InteractionState:
        """Stamp last_interaction_at and optionally the user's input modality."""
        now = now or datetime.now(timezone.utc)
        state = self.load()
        state.last_interaction_at = now.isoformat()
        if input_mode is not None:
            if input_mode not in MODALITIES:
                raise ValueError(f"unknown input mode: {input_mode!r}")
            state.last_user_input_mode = input_mode
        self.save(state)
        return state

    def set_temporary_mode(
        self,
        mode: str,
        duration_ms: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> InteractionState:
        """Set an explicit override; without a duration it never expires."""
        if mode not in MODES:
            raise ValueError(f"unknown mode: {mode!r}")
        now = now or datetime.now(timezone.utc)
        state = self.load()
        state.current_mode = mode
        if mode == AUTO:
            state.mode_set_at = None
            state.mode_expires_at = None
        else:
            state.mode_set_at = now.isoformat()
            state.mode_expires_at = (
                (now + timedelta(milliseconds=duration_ms)).isoformat()
                if duration_ms is not None
                else None
            )
        self.save(state)
        return state

    def record_correction(self, corrected_to: str, now: Optional[datetime] = None) -> InteractionState:
        """Append a correction; only the most recent MAX_CORRECTIONS are kept."""
        if corrected_to not in MODALITIES:
            raise ValueError(f"unknown modality: {corrected_to!r}")
        now = now or datetime.now(timezone.utc)
        local = now.astimezone(self.tz)
        state = self.load()
        state.corrections.append(
            Correction(
                timestamp=now.isoformat(),
                day_of_week=local.weekday(),
                hour_of_day=local.hour,
                corrected_to=corrected_to,
            )
        )
        state.corrections = state.corrections[-MAX_CORRECTIONS:]
        self.save(state)
        return state

    def clear_corrections(self) -> InteractionState:
        state = self.load()
        state.corrections = []
        self.save(state)
        return state

    def expire_mode_if_lapsed(self, state: InteractionState, now: datetime) -> bool:
        """Reset a lapsed override to auto and persist. Returns True if reset."""
        if state.current_mode == AUTO:
            return False
        expires = parse_timestamp(state.mode_expires_at)
        if expires is None or expires > now:
            return False
        _log(f"[InteractionState] {state.current_mode} override expired at {state.mode_expires_at}")
        state.current_mode = AUTO
        state.mode_set_at = None
        state.mode_expires_at = None
        self.save(state)
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _from_dict(raw: dict) -> InteractionState:
        def _opt_str(key: str) -> Optional[str]:
            value = raw.get(key)
            return value if isinstance(value, str) else None

        mode = raw.get("current_mode", AUTO)
        if mode not in MODES:
            mode = AUTO
        expires_at = _opt_str("mode_expires_at")
        # An expiry that was written but cannot be read must not become permanent
        if mode != AUTO and raw.get("mode_expires_at") is not None and parse_timestamp(expires_at) is None:
            _log(f"[InteractionState] unreadable expiry {raw.get('mode_expires_at')!r}, resetting to auto")
            mode, expires_at = AUTO, None
        last_input = raw.get("last_user_input_mode")
        return InteractionState(
            current_mode=mode,
            mode_set_at=_opt_str("mode_set_at") if mode != AUTO else None,
            mode_expires_at=expires_at if mode != AUTO else None,
            last_user_input_mode=last_input if last_input in MODALITIES else None,
            last_interaction_at=_opt_str("last_interaction_at"),
            corrections=InteractionStateStore._corrections_from(raw.get("corrections")),
        )

    @staticmethod
    def _corrections_from(items: Any) -> List[Correction]:
        out: List[Correction] = []
        if not isinstance(items, list):
            return out
        for item in items:
            if not isinstance(item, dict) or item.get("corrected_to") not in MODALITIES:
                continue
            try:
                out.append(
                    Correction(
                        timestamp=str(item.get("timestamp", "")),
                        day_of_week=int(item["day_of_week"]),
                        hour_of_day=int(item["hour_of_day"]),
                        corrected_to=item["corrected_to"],
                    )
                )
            except (KeyError, TypeError, ValueError):
                continue
        return out[-MAX_CORRECTIONS:]
