"""Domain data models for modality decisions and synthesis."""

from dataclasses import dataclass, field
from typing import Any, List, Optional

VOICE = "voice"
TEXT = "text"
AUTO = "auto"

MODALITIES = frozenset({VOICE, TEXT})
MODES = frozenset({AUTO, VOICE, TEXT})


@dataclass
class Correction:
    """One instance of the user overriding the chosen modality."""

    timestamp: str  # ISO datetime (UTC)
    day_of_week: int  # 0=Monday ... 6=Sunday, schedule timezone
    hour_of_day: int  # 0-23, schedule timezone
    corrected_to: str  # "voice" | "text"


@dataclass
class InteractionState:
    """Persisted per-deployment interaction record."""

    current_mode: str = AUTO
    mode_set_at: Optional[str] = None
    mode_expires_at: Optional[str] = None
    last_user_input_mode: Optional[str] = None
    last_interaction_at: Optional[str] = None
    corrections: List[Correction] = field(default_factory=list)


@dataclass
class Signal:
    """A signed soft-scoring contribution."""

    name: str  # e.g. "context_keyword", "schedule"
    weight: float
    detail: str = ""


@dataclass
class Decision:
    """Outcome of one modality decision with its trace."""

    voice: bool
    reason: str
    rule: Optional[str] = None  # hard rule that fired, if any
    signals: List[Signal] = field(default_factory=list)
    score: float = 0.0

    @property
    def modality(self) -> str:
        return VOICE if self.voice else TEXT

    def describe(self) -> str:
        """Human-readable multi-line trace."""
        lines = [f"decision: {self.modality} ({self.reason})"]
        if self.rule is None:
            for s in self.signals:
                lines.append(f"  {s.weight:+.2f} {s.name}" + (f": {s.detail}" if s.detail else ""))
            lines.append(f"  score = {self.score:+.2f}")
        return "\n".join(lines)


@dataclass
class SynthesisResult:
    """A delivery-ready audio artifact on local disk."""

    audio_path: str
    duration_ms: int
    model: str


@dataclass
class Delivery:
    """What the dispatcher actually did with one outbound message."""

    modality: str
    result: Any = None
    fallback: bool = False
    error: Optional[str] = None
