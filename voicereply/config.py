"""Configuration store: built-in defaults overlaid with the skill.json document."""

import copy
import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from voicereply.domain.models import MODALITIES


def _log(msg: str):
    print(msg, file=sys.stderr)


PRIMARY_MODEL = "zh"
MIXED_MODEL = "zh-en"

DEFAULT_CONFIG_PATH = Path.home() / ".openclaw" / "workspace" / "skills" / "feishu-voice" / "skill.json"

DEFAULT_CONFIG: Dict[str, Any] = {
    "models": {
        PRIMARY_MODEL: {"name": "vits-zh-hf-fanchen-C", "lengthScale": 0.65},
        MIXED_MODEL: {"name": "vits-melo-tts-zh_en", "lengthScale": 0.8},
    },
    "rules": {
        "forceText": {
            "maxChars": 150,
            "codeBlocks": True,
            "inlineCode": True,
            "tables": True,
            "techKeywords": True,
        },
        "schedule": {
            "timezone": "Asia/Shanghai",
            "weekday": {
                "07:00-08:30": "voice",
                "08:30-12:00": "text",
                "12:00-13:00": "voice",
                "13:00-17:30": "text",
                "17:30-19:00": "voice",
                "19:00-07:00": "voice",
            },
            "weekend": "voice",
        },
        "contextKeywords": {
            "voice": ["开车", "driving", "commuting", "在路上", "walking", "跑步"],
            "text": ["开会", "meeting", "in class", "上课", "图书馆", "library"],
        },
        "adaptiveRules": {
            "mirrorUserInput": True,
            "longIntervalMs": 4 * 60 * 60 * 1000,
            "longIntervalPrefers": "text",
        },
    },
}

# Mappings whose keys are user-defined (new keys allowed).
_OPEN_MAPPINGS = {("models",)}
# Positional mappings: a loaded value replaces the default wholesale.
_REPLACED_MAPPINGS = {("rules", "schedule", "weekday")}
# String leaves restricted to "voice" | "text".
_MODALITY_FIELDS = {
    ("rules", "schedule", "weekend"),
    ("rules", "adaptiveRules", "longIntervalPrefers"),
}


def _same_type(default: Any, value: Any) -> bool:
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, (int, float)):
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if isinstance(default, str):
        return isinstance(value, str)
    if isinstance(default, list):
        return isinstance(value, list) and all(isinstance(v, str) for v in value)
    return False


def _valid_model(value: Any) -> bool:
    if not isinstance(value, dict) or not isinstance(value.get("name"), str):
        return False
    scale = value.get("lengthScale", 1.0)
    return isinstance(scale, (int, float)) and not isinstance(scale, bool)


def _valid_weekday(value: Any) -> bool:
    return isinstance(value, dict) and all(
        isinstance(k, str) and v in MODALITIES for k, v in value.items()
    )


def merge_config(defaults: Dict[str, Any], loaded: Any, _path: Tuple[str, ...] = ()) -> Dict[str, Any]:
    """Deep-merge *loaded* over *defaults*, leaf by leaf.

    A default leaf is replaced only by a present value of a compatible type;
    anything else keeps the default. Nested objects are merged, never
    replaced, so sibling defaults survive a partial override. The result is
    a fresh structure; *defaults* is never mutated.
    """
    merged = copy.deepcopy(defaults)
    if not isinstance(loaded, dict):
        return merged

    for key, value in loaded.items():
        path = _path + (key,)
        dotted = ".".join(path)

        if path in _REPLACED_MAPPINGS:
            if _valid_weekday(value):
                merged[key] = dict(value)
            else:
                _log(f"[Config] ignoring malformed {dotted}")
            continue

        if key not in merged:
            if _path in _OPEN_MAPPINGS and _valid_model(value):
                merged[key] = {"name": value["name"], "lengthScale": value.get("lengthScale", 1.0)}
            else:
                _log(f"[Config] ignoring unknown key {dotted}")
            continue

        default = merged[key]
        if isinstance(default, dict):
            if isinstance(value, dict):
                merged[key] = merge_config(default, value, path)
            else:
                _log(f"[Config] ignoring non-object {dotted}")
        elif not _same_type(default, value):
            _log(f"[Config] ignoring ill-typed {dotted}: {value!r}")
        elif path in _MODALITY_FIELDS and value not in MODALITIES:
            _log(f"[Config] ignoring {dotted}: {value!r} is not voice/text")
        else:
            merged[key] = copy.deepcopy(value)

    return merged


class ConfigStore:
    """Loads user-tunable modality rules, falling back to defaults on any failure."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or os.environ.get("VOICEREPLY_CONFIG") or DEFAULT_CONFIG_PATH)

    def load(self) -> Dict[str, Any]:
        """Return the merged configuration. Never raises."""
        try:
            if not self.path.exists():
                return copy.deepcopy(DEFAULT_CONFIG)
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(raw, dict):
                raise ValueError("root is not an object")
            return merge_config(DEFAULT_CONFIG, raw.get("config"))
        except Exception as e:
            _log(f"[Config] load failed ({self.path}): {e}")
            return copy.deepcopy(DEFAULT_CONFIG)
