"""Speech synthesis pipeline: sherpa-onnx TTS, ffmpeg opus transcode, ffprobe duration.

Every temporary file is owned by a scoped block that removes it on every
exit path. Subprocess calls block until the child exits and are not
cancellable; callers wanting a timeout must enforce it themselves.
"""

import asyncio
import math
import os
import re
import subprocess
import sys
import tempfile
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Tuple

from voicereply.config import MIXED_MODEL, PRIMARY_MODEL, ConfigStore
from voicereply.domain.models import SynthesisResult
from voicereply.errors import SynthesisError


def _log(msg: str):
    print(msg, file=sys.stderr)


TTS_HOME = Path.home() / ".openclaw" / "tools" / "sherpa-onnx-tts"
DEFAULT_TTS_RUNTIME = TTS_HOME / "runtime" / "bin" / "sherpa-onnx-offline-tts"
DEFAULT_TTS_MODELS = TTS_HOME / "models"

_LATIN_RUN_RE = re.compile(r"[a-zA-Z]{2,}")

VoiceSender = Callable[[SynthesisResult, Any], Awaitable[Any]]


def contains_latin(text: str) -> bool:
    """True if the text has a run of two or more Latin letters."""
    return bool(_LATIN_RUN_RE.search(text))


def select_model(text: str, config: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
    """Pick the mixed-language model for text with Latin words, else the primary one."""
    key = MIXED_MODEL if contains_latin(text) else PRIMARY_MODEL
    return key, config["models"][key]


def model_file(model_dir: Path, name: str) -> Path:
    """``<name>.onnx`` if present, else the ``model.onnx`` used by melo models."""
    named = model_dir / f"{name}.onnx"
    return named if named.exists() else model_dir / "model.onnx"


def _run(stage: str, cmd: List[str]) -> subprocess.CompletedProcess:
    try:
        proc = subprocess.run(cmd, capture_output=True, check=False)
    except OSError as e:
        raise SynthesisError(stage, f"could not start {cmd[0]}: {e}") from e
    if proc.returncode != 0:
        err = proc.stderr.decode("utf-8", errors="replace").strip()[-500:]
        raise SynthesisError(stage, f"exit {proc.returncode}: {err}", returncode=proc.returncode)
    return proc


def parse_duration_ms(raw: str) -> int:
    """Convert ffprobe's seconds output to milliseconds; rejects junk."""
    try:
        seconds = float(raw.strip())
    except ValueError:
        raise SynthesisError("probe", f"unparseable duration: {raw!r}")
    if not math.isfinite(seconds) or seconds < 0:
        raise SynthesisError("probe", f"invalid duration: {raw!r}")
    return int(round(seconds * 1000))


class SynthesisPipeline:
    """Turns reply text into a delivery-ready mono 16 kHz opus file."""

    def __init__(
        self,
        config_store: ConfigStore,
        runtime_path: Optional[str] = None,
        models_dir: Optional[str] = None,
        tmp_dir: Optional[str] = None,
    ):
        self.config_store = config_store
        self.runtime_path = Path(
            runtime_path or os.environ.get("VOICEREPLY_TTS_RUNTIME") or DEFAULT_TTS_RUNTIME
        )
        self.models_dir = Path(models_dir or os.environ.get("VOICEREPLY_TTS_MODELS") or DEFAULT_TTS_MODELS)
        self.tmp_dir = Path(tmp_dir or tempfile.gettempdir())

    # ------------------------------------------------------------------
    # Scoped temp files
    # ------------------------------------------------------------------
    def _temp_path(self, suffix: str) -> Path:
        return self.tmp_dir / f"tts_{time.time_ns()}_{uuid.uuid4().hex[:8]}{suffix}"

    @contextmanager
    def _scratch(self, suffix: str) -> Iterator[Path]:
        """Yield a temp path that is removed when the block exits."""
        path = self._temp_path(suffix)
        try:
            yield path
        finally:
            self.cleanup(path)

    @staticmethod
    def cleanup(path) -> None:
        """Best-effort removal; failures are logged only."""
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            _log(f"[Synthesis] cleanup failed for {path}: {e}")

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    def synthesize(self, text: str) -> SynthesisResult:
        """Generate an opus artifact for *text*. The caller owns the returned file.

        Raises SynthesisError if any stage fails; in that case no temp file
        is left behind.
        """
        config = self.config_store.load()
        key, model = select_model(text, config)
        model_dir = self.models_dir / model["name"]
        opus_path = self._temp_path(".opus")

        try:
            with self._scratch(".wav") as wav_path:
                _run(
                    "tts",
                    [
                        str(self.runtime_path),
                        f"--vits-model={model_file(model_dir, model['name'])}",
                        f"--vits-lexicon={model_dir / 'lexicon.txt'}",
                        f"--vits-tokens={model_dir / 'tokens.txt'}",
                        f"--vits-length-scale={model.get('lengthScale', 1.0)}",
                        f"--output-filename={wav_path}",
                        text,
                    ],
                )
                _run(
                    "transcode",
                    ["ffmpeg", "-y", "-i", str(wav_path), "-acodec", "libopus", "-ac", "1", "-ar", "16000", str(opus_path)],
                )

            probe = _run(
                "probe",
                [
                    "ffprobe", "-v", "error",
                    "-show_entries", "format=duration",
                    "-of", "default=noprint_wrappers=1:nokey=1",
                    str(opus_path),
                ],
            )
            duration_ms = parse_duration_ms(probe.stdout.decode("utf-8", errors="replace"))
        except BaseException:
            self.cleanup(opus_path)
            raise

        _log(f"[Synthesis] {key} model={model['name']} {len(text)} chars -> {duration_ms} ms")
        return SynthesisResult(audio_path=str(opus_path), duration_ms=duration_ms, model=model["name"])

    @contextmanager
    def audio_artifact(self, text: str) -> Iterator[SynthesisResult]:
        """Synthesize and yield the artifact; it is deleted when the block exits."""
        result = self.synthesize(text)
        try:
            yield result
        finally:
            self.cleanup(result.audio_path)

    async def send_as_voice(self, text: str, destination: Any, sender: VoiceSender) -> Any:
        """Synthesize, hand the artifact to *sender*, and always remove it afterwards.

        The sender's return value is passed through unmodified.
        """
        result = await asyncio.to_thread(self.synthesize, text)
        try:
            return await sender(result, destination)
        finally:
            self.cleanup(result.audio_path)

    def is_available(self) -> bool:
        """Runtime binary and both model directories are present."""
        try:
            models = self.config_store.load()["models"]
            return (
                self.runtime_path.exists()
                and (self.models_dir / models[PRIMARY_MODEL]["name"]).exists()
                and (self.models_dir / models[MIXED_MODEL]["name"]).exists()
            )
        except Exception as e:
            _log(f"[Synthesis] availability check failed: {e}")
            return False
