"""Voice Reply: decides whether each chat reply goes out as speech or text."""

from voicereply.config import ConfigStore, DEFAULT_CONFIG, merge_config
from voicereply.interaction_state import InteractionStateStore
from voicereply.decision import ModalityDecisionEngine, DecisionContext, hard_rule, score_signals
from voicereply.synthesis import SynthesisPipeline
from voicereply.dispatcher import ReplyDispatcher
from voicereply.commands import handle_mode_command
from voicereply.webhook import WebhookTransport
from voicereply.errors import SynthesisError, VoiceReplyError
from voicereply.domain.models import Decision, InteractionState, SynthesisResult


def build_engine(config_path=None, state_file=None, clock=None) -> ModalityDecisionEngine:
    """Wire a config store and a state store keyed to the schedule timezone."""
    config_store = ConfigStore(config_path)
    tz = config_store.load()["rules"]["schedule"]["timezone"]
    return ModalityDecisionEngine(config_store, InteractionStateStore(state_file, tz=tz), clock=clock)


def build_webhook_dispatcher(webhook_url, config_path=None, state_file=None, username="Voice Reply") -> ReplyDispatcher:
    """Wire an engine and a synthesis pipeline to a Discord webhook transport."""
    engine = build_engine(config_path, state_file)
    transport = WebhookTransport(webhook_url, username=username)
    return ReplyDispatcher(
        engine,
        SynthesisPipeline(engine.config_store),
        send_text=transport.send_text,
        send_voice=transport.send_voice,
    )


__all__ = [
    "ConfigStore",
    "DEFAULT_CONFIG",
    "merge_config",
    "InteractionStateStore",
    "ModalityDecisionEngine",
    "DecisionContext",
    "hard_rule",
    "score_signals",
    "SynthesisPipeline",
    "ReplyDispatcher",
    "handle_mode_command",
    "WebhookTransport",
    "SynthesisError",
    "VoiceReplyError",
    "Decision",
    "InteractionState",
    "SynthesisResult",
    "build_engine",
    "build_webhook_dispatcher",
]
