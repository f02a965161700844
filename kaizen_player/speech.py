# kaizen_player/speech.py
"""
Narration synthesis with an on-disk cache.

Audio lands in <cache_dir>/<hash>.mp3, where hash is a sha256 over the
(text, voice, rate) triple, so the same narration is synthesized at most
once. The timing map computed for that audio is stored next to it as
<hash>.timing.json.
"""
from __future__ import annotations

import hashlib
import json
import os
import re
import tempfile
from typing import Dict, List, Optional
from xml.sax.saxutils import escape

from .logger import get_logger
from .timing import TimingSegment, segments_from_payload, segments_to_payload

log = get_logger(__name__)


CACHE_ENGINE = "azure"
CACHE_ENGINE_VER = "v1"
AUDIO_EXT = ".mp3"
TIMING_SUFFIX = ".timing.json"


class SynthesisError(RuntimeError):
    """The speech service failed or produced no audio."""


def _normalize_text(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").strip())


def content_hash(text: str, voice: str, rate: str) -> str:
    payload = {
        "engine": CACHE_ENGINE,
        "engine_ver": CACHE_ENGINE_VER,
        "voice": voice,
        "rate": rate,
        "text": _normalize_text(text),
    }
    payload_json = json.dumps(payload, sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(payload_json.encode("utf-8")).hexdigest()


def default_cache_dir(root_dir: str) -> str:
    return os.environ.get("KAIZEN_TTS_CACHE") or os.path.join(root_dir or ".", "tts_cache")


# -----------------------------
# Backends
# -----------------------------

class SpeechBackend:
    """Writes synthesized speech for `text` to `out_path` or raises SynthesisError."""

    def synthesize_to_file(self, text: str, voice: str, rate: str, out_path: str) -> None:
        raise NotImplementedError


def build_ssml(text: str, voice: str, rate: str, language: str = "zh-CN") -> str:
    return (
        f'<speak version="1.0" xmlns="http://www.w3.org/2001/10/synthesis" xml:lang="{language}">'
        f'<voice name="{voice}">'
        f'<prosody rate="{rate}">{escape(text)}</prosody>'
        f"</voice></speak>"
    )


class AzureSpeechBackend(SpeechBackend):
    """
    Azure Neural TTS. Credentials come from AZURE_SPEECH_KEY / AZURE_SPEECH_REGION
    unless passed explicitly.
    """

    def __init__(self, key: Optional[str] = None, region: Optional[str] = None):
        self.key = key or os.environ.get("AZURE_SPEECH_KEY", "")
        self.region = region or os.environ.get("AZURE_SPEECH_REGION", "")

    def synthesize_to_file(self, text: str, voice: str, rate: str, out_path: str) -> None:
        if not self.key or not self.region:
            raise SynthesisError("AZURE_SPEECH_KEY and AZURE_SPEECH_REGION must be set")

        import azure.cognitiveservices.speech as speechsdk

        speech_config = speechsdk.SpeechConfig(subscription=self.key, region=self.region)
        speech_config.set_speech_synthesis_output_format(
            speechsdk.SpeechSynthesisOutputFormat.Audio24Khz48KBitRateMonoMp3
        )
        speech_config.speech_synthesis_voice_name = voice
        audio_config = speechsdk.audio.AudioOutputConfig(filename=out_path)
        synthesizer = speechsdk.SpeechSynthesizer(speech_config=speech_config, audio_config=audio_config)

        language = "-".join(voice.split("-")[:2]) if voice.count("-") >= 2 else "zh-CN"
        result = synthesizer.speak_ssml_async(build_ssml(text, voice, rate, language)).get()
        if result.reason == speechsdk.ResultReason.SynthesizingAudioCompleted:
            return

        details = speechsdk.CancellationDetails(result)
        msg = f"{result.reason}"
        if details.reason == speechsdk.CancellationReason.Error:
            msg += f": {details.error_details}"
        raise SynthesisError(msg)


# -----------------------------
# Cache client
# -----------------------------

class SpeechCache:
    def __init__(self, cache_dir: str, backend: SpeechBackend):
        self.cache_dir = cache_dir
        self.backend = backend

    def audio_path(self, h: str) -> str:
        return os.path.join(self.cache_dir, f"{h}{AUDIO_EXT}")

    def timing_path(self, h: str) -> str:
        return os.path.join(self.cache_dir, f"{h}{TIMING_SUFFIX}")

    def synthesize(self, text: str, voice: str, rate: str, force: bool = False) -> str:
        """
        Path of the audio for (text, voice, rate), synthesizing it on a cache miss.

        force=True drops any cached entry first.
        """
        if not _normalize_text(text):
            raise SynthesisError("Cannot synthesize empty text")

        h = content_hash(text, voice, rate)
        if force:
            self.invalidate(h)

        path = self.audio_path(h)
        if os.path.exists(path) and os.path.getsize(path) > 0:
            log.debug("Speech cache hit %s", h[:12])
            return path

        os.makedirs(self.cache_dir, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", suffix=AUDIO_EXT, dir=self.cache_dir)
        os.close(fd)
        try:
            log.info("Synthesizing narration %s (%d chars, voice=%s, rate=%s)", h[:12], len(text), voice, rate)
            try:
                self.backend.synthesize_to_file(text, voice, rate, tmp_path)
            except SynthesisError:
                raise
            except Exception as e:
                raise SynthesisError(str(e)) from e
            if not os.path.exists(tmp_path) or os.path.getsize(tmp_path) == 0:
                raise SynthesisError("Speech service returned empty audio")
            os.replace(tmp_path, path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
        return path

    def invalidate(self, h: str) -> None:
        """Delete the audio and timing files for `h`; missing files are fine."""
        for p in (self.audio_path(h), self.timing_path(h)):
            if os.path.exists(p):
                os.remove(p)
                log.debug("Removed cached %s", os.path.basename(p))

    # timing sibling

    def load_timing(self, h: str) -> Optional[Dict]:
        """{"duration": float, "segments": [TimingSegment]} or None."""
        path = self.timing_path(h)
        if not os.path.exists(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            duration = float(data["duration"])
        except (OSError, ValueError, KeyError, TypeError):
            log.warning("Ignoring unreadable timing cache %s", path)
            return None
        return {"duration": duration, "segments": segments_from_payload(data.get("segments"))}

    def save_timing(self, h: str, duration: float, segments: List[TimingSegment]) -> None:
        os.makedirs(self.cache_dir, exist_ok=True)
        payload = {"duration": float(duration), "segments": segments_to_payload(segments)}
        fd, tmp_path = tempfile.mkstemp(prefix=".tmp_", dir=self.cache_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False)
            os.replace(tmp_path, self.timing_path(h))
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
