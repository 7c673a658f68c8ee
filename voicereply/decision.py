"""Modality decision engine: hard rules first, then weighted soft signals.

Evaluation is a strict precedence chain:

1. Content veto: code, tables, long or technical text always goes out as text.
2. Explicit temporary mode: a live ``/voice`` or ``/text`` override wins.
3. Soft scoring: independent signed signals are summed; a positive score
   means voice, zero or negative means text.

The two phases are separate functions (``hard_rule`` and ``score_signals``)
so each can be exercised on its own.
"""

import re
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from voicereply.config import ConfigStore
from voicereply.domain.models import (
    AUTO,
    TEXT,
    VOICE,
    Decision,
    InteractionState,
    Signal,
)
from voicereply.interaction_state import InteractionStateStore, parse_timestamp, resolve_zone
from voicereply.schedule import schedule_preference


def _log(msg: str):
    print(msg, file=sys.stderr)


# Signal weights
CONTEXT_WEIGHT = 0.6
MIRROR_WEIGHT = 0.3
SCHEDULE_WEIGHT = 0.2
LONG_INTERVAL_WEIGHT = 0.15
LEARNED_WEIGHT = 0.25

# Learned-pattern thresholds
MIN_CORRECTIONS = 3
MIN_SIMILAR = 2
SIMILAR_WINDOW = 3
HOUR_TOLERANCE = 2

_CODE_BLOCK_RE = re.compile(r"```[\s\S]*```")
_INLINE_CODE_RE = re.compile(r"`[^`]+`")
_TABLE_RE = re.compile(r"\|.*\|.*\|")
_TECH_RE = re.compile(
    r"\b(function|const|let|var|import|export|class|interface|type|async|await|return"
    r"|if|else|for|while|npm|git|docker|api|http|json|xml|sql|bash|shell|python"
    r"|javascript|typescript|node|react|vue)\b",
    re.IGNORECASE | re.ASCII,
)


# ----------------------------------------------------------------------
# Phase 1: hard rules
# ----------------------------------------------------------------------
def _has_code_block(text: str, rules: Dict[str, Any]) -> bool:
    return bool(rules.get("codeBlocks")) and bool(_CODE_BLOCK_RE.search(text))


def _has_inline_code(text: str, rules: Dict[str, Any]) -> bool:
    return bool(rules.get("inlineCode")) and len(_INLINE_CODE_RE.findall(text)) > 2


def _has_table(text: str, rules: Dict[str, Any]) -> bool:
    return bool(rules.get("tables")) and bool(_TABLE_RE.search(text))


def _too_long(text: str, rules: Dict[str, Any]) -> bool:
    return len(text) > rules.get("maxChars", 150)


def _has_tech_keywords(text: str, rules: Dict[str, Any]) -> bool:
    return bool(rules.get("techKeywords")) and bool(_TECH_RE.search(text))


FORCE_TEXT_RULES: List[Tuple[str, Callable[[str, Dict[str, Any]], bool]]] = [
    ("code_block", _has_code_block),
    ("inline_code", _has_inline_code),
    ("table", _has_table),
    ("max_chars", _too_long),
    ("tech_keywords", _has_tech_keywords),
]


def force_text_rule(text: str, rules: Dict[str, Any]) -> Optional[str]:
    """Name of the first content rule that forces text, or None."""
    for name, predicate in FORCE_TEXT_RULES:
        if predicate(text, rules):
            return name
    return None


@dataclass
class DecisionContext:
    """Everything one decision reads: a config snapshot, the state store, and the clock."""

    config: Dict[str, Any]
    store: InteractionStateStore
    now: datetime


def hard_rule(
    ctx: DecisionContext,
    text: str,
    state: InteractionState,
) -> Optional[Decision]:
    """Evaluate content veto and explicit mode. None means fall through to scoring.

    A lapsed override is reset to auto on *state* and written back through
    the store.
    """
    rule = force_text_rule(text, ctx.config["rules"]["forceText"])
    if rule:
        return Decision(voice=False, reason=f"content forces text ({rule})", rule=f"force_text:{rule}")

    if state.current_mode != AUTO:
        expires = parse_timestamp(state.mode_expires_at)
        if expires is not None and expires <= ctx.now:
            ctx.store.expire_mode_if_lapsed(state, ctx.now)
        else:
            return Decision(
                voice=state.current_mode == VOICE,
                reason=f"explicit {state.current_mode} mode"
                + (f" until {state.mode_expires_at}" if state.mode_expires_at else ""),
                rule=f"mode:{state.current_mode}",
            )
    return None


# ----------------------------------------------------------------------
# Phase 2: soft scoring
# ----------------------------------------------------------------------
def _signed(modality: str, weight: float) -> float:
    return weight if modality == VOICE else -weight


def _context_signal(user_message: Optional[str], keywords: Dict[str, List[str]]) -> Optional[Signal]:
    if not user_message:
        return None
    lowered = user_message.lower()
    for modality in (VOICE, TEXT):
        for kw in keywords.get(modality, []):
            if kw and kw.lower() in lowered:
                return Signal("context_keyword", _signed(modality, CONTEXT_WEIGHT), f"{kw!r} suggests {modality}")
    return None


def _learned_signal(state: InteractionState, local_now: datetime) -> Optional[Signal]:
    if len(state.corrections) < MIN_CORRECTIONS:
        return None
    similar = [
        c
        for c in state.corrections
        if c.day_of_week == local_now.weekday() and abs(c.hour_of_day - local_now.hour) <= HOUR_TOLERANCE
    ]
    if len(similar) < MIN_SIMILAR:
        return None
    recent = similar[-SIMILAR_WINDOW:]
    voice_votes = sum(1 for c in recent if c.corrected_to == VOICE)
    if voice_votes >= 2:
        return Signal("learned_pattern", LEARNED_WEIGHT, f"{voice_votes}/{len(recent)} recent corrections to voice")
    if voice_votes == 0:
        return Signal("learned_pattern", -LEARNED_WEIGHT, f"{len(recent)} recent corrections to text")
    return None


def score_signals(
    config: Dict[str, Any],
    state: InteractionState,
    now: datetime,
    user_message: Optional[str] = None,
) -> Tuple[float, List[Signal]]:
    """Pure weighted scoring. Returns (score, contributing signals)."""
    rules = config["rules"]
    adaptive = rules["adaptiveRules"]
    signals: List[Signal] = []

    ctx_signal = _context_signal(user_message, rules["contextKeywords"])
    if ctx_signal:
        signals.append(ctx_signal)

    if adaptive.get("mirrorUserInput") and state.last_user_input_mode in (VOICE, TEXT):
        signals.append(
            Signal(
                "mirror_input",
                _signed(state.last_user_input_mode, MIRROR_WEIGHT),
                f"user last wrote in {state.last_user_input_mode}",
            )
        )

    pref, detail = schedule_preference(rules["schedule"], now)
    signals.append(Signal("schedule", _signed(pref, SCHEDULE_WEIGHT), f"{detail} prefers {pref}"))

    last = parse_timestamp(state.last_interaction_at)
    if last is not None:
        elapsed_ms = (now - last).total_seconds() * 1000
        if elapsed_ms > adaptive.get("longIntervalMs", 0):
            prefers = adaptive.get("longIntervalPrefers", TEXT)
            signals.append(
                Signal(
                    "long_interval",
                    _signed(prefers, LONG_INTERVAL_WEIGHT),
                    f"{int(elapsed_ms // 60000)} min since last interaction",
                )
            )

    local_now = now.astimezone(resolve_zone(rules["schedule"].get("timezone", "UTC")))
    learned = _learned_signal(state, local_now)
    if learned:
        signals.append(learned)

    score = round(sum(s.weight for s in signals), 6)
    return score, signals


# ----------------------------------------------------------------------
# Engine
# ----------------------------------------------------------------------
class ModalityDecisionEngine:
    """Decides voice vs. text for each outbound message."""

    def __init__(
        self,
        config_store: ConfigStore,
        state_store: InteractionStateStore,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config_store = config_store
        self.state_store = state_store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def context(self, now: Optional[datetime] = None) -> DecisionContext:
        return DecisionContext(
            config=self.config_store.load(),
            store=self.state_store,
            now=now or self._clock(),
        )

    def decide(
        self,
        response_text: str,
        user_message: Optional[str] = None,
        input_mode: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """True if *response_text* should be sent as voice.

        Records the exchange in the state store afterwards so the next
        decision sees it as the latest interaction.
        """
        ctx = self.context(now)
        decision = self._evaluate(ctx, response_text, user_message, input_mode)
        _log(f"[Decision] {decision.modality}: {decision.reason} (score={decision.score:+.2f})")
        ctx.store.record_interaction(input_mode, now=ctx.now)
        return decision.voice

    def explain(
        self,
        response_text: str,
        user_message: Optional[str] = None,
        input_mode: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Decision:
        """Recompute the decision and return its full trace.

        Only a lapsed override is written back; the interaction is not recorded.
        """
        ctx = self.context(now)
        return self._evaluate(ctx, response_text, user_message, input_mode)

    @staticmethod
    def _evaluate(
        ctx: DecisionContext,
        text: str,
        user_message: Optional[str],
        input_mode: Optional[str],
    ) -> Decision:
        state = ctx.store.load()
        fixed = hard_rule(ctx, text, state)
        if fixed is not None:
            return fixed

        if input_mode in (VOICE, TEXT):
            state.last_user_input_mode = input_mode
        score, signals = score_signals(ctx.config, state, ctx.now, user_message)
        voice = score > 0
        return Decision(
            voice=voice,
            reason=f"score {score:+.2f} {'>' if voice else '<='} 0",
            signals=signals,
            score=score,
        )
