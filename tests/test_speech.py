"""Tests for the narration speech cache."""

from __future__ import annotations

import os

import pytest

from conftest import FakeSpeechBackend
from kaizen_player.speech import (
    AzureSpeechBackend,
    SpeechCache,
    SynthesisError,
    build_ssml,
    content_hash,
    default_cache_dir,
)
from kaizen_player.timing import generate_timing_map

VOICE = "zh-CN-XiaoxiaoNeural"


def test_hash_ignores_whitespace_differences() -> None:
    """Leading, trailing and repeated whitespace do not change the key."""
    assert content_hash("改善 后", VOICE, "+0%") == content_hash("  改善   后\n", VOICE, "+0%")


def test_hash_depends_on_voice_and_rate() -> None:
    """A different voice or rate is a different clip."""
    base = content_hash("改善后", VOICE, "+0%")

    assert content_hash("改善后", "zh-CN-YunxiNeural", "+0%") != base
    assert content_hash("改善后", VOICE, "+20%") != base
    assert content_hash("改善后", VOICE, "+0%") == base


def test_cache_hit_skips_backend(tmp_path, speech_backend) -> None:
    """The second request for the same narration reuses the file."""
    cache = SpeechCache(str(tmp_path), speech_backend)

    first = cache.synthesize("改善后原地完成", VOICE, "+0%")
    second = cache.synthesize("改善后原地完成", VOICE, "+0%")

    assert first == second
    assert len(speech_backend.calls) == 1
    assert os.path.basename(first) == content_hash("改善后原地完成", VOICE, "+0%") + ".mp3"


def test_force_synthesizes_again(tmp_path, speech_backend) -> None:
    """force=True discards the cached audio and its timing."""
    cache = SpeechCache(str(tmp_path), speech_backend)
    cache.synthesize("取料", VOICE, "+0%")
    h = content_hash("取料", VOICE, "+0%")
    cache.save_timing(h, 1.0, generate_timing_map("取料", 1.0))

    cache.synthesize("取料", VOICE, "+0%", force=True)

    assert len(speech_backend.calls) == 2
    assert cache.load_timing(h) is None


def test_empty_output_leaves_no_file(tmp_path) -> None:
    """A zero-byte result is an error and nothing is cached."""
    cache = SpeechCache(str(tmp_path), FakeSpeechBackend(payload=b""))

    with pytest.raises(SynthesisError):
        cache.synthesize("取料", VOICE, "+0%")

    assert os.listdir(tmp_path) == []


def test_backend_errors_are_wrapped(tmp_path, speech_backend) -> None:
    """Unexpected backend exceptions surface as SynthesisError."""
    speech_backend.error = ConnectionError("network down")
    cache = SpeechCache(str(tmp_path), speech_backend)

    with pytest.raises(SynthesisError, match="network down"):
        cache.synthesize("取料", VOICE, "+0%")

    assert os.listdir(tmp_path) == []


def test_empty_text_is_rejected(tmp_path, speech_backend) -> None:
    """Blank narration never reaches the backend."""
    cache = SpeechCache(str(tmp_path), speech_backend)

    with pytest.raises(SynthesisError):
        cache.synthesize("   ", VOICE, "+0%")

    assert speech_backend.calls == []


def test_timing_round_trip_and_corrupt_file(tmp_path, speech_backend) -> None:
    """Saved timing loads back; a damaged timing file is ignored."""
    cache = SpeechCache(str(tmp_path), speech_backend)
    h = content_hash("第一句。第二句", VOICE, "+0%")
    cache.save_timing(h, 3.5, generate_timing_map("第一句。第二句", 3.5))

    loaded = cache.load_timing(h)

    assert loaded["duration"] == pytest.approx(3.5)
    assert [s.text for s in loaded["segments"]] == ["第一句。", "第二句"]

    with open(cache.timing_path(h), "w", encoding="utf-8") as f:
        f.write("{}")
    assert cache.load_timing(h) is None


def test_invalidate_tolerates_missing_files(tmp_path, speech_backend) -> None:
    """Invalidating an unknown key is a no-op."""
    SpeechCache(str(tmp_path), speech_backend).invalidate("0" * 64)


def test_cache_dir_env_override(monkeypatch) -> None:
    """KAIZEN_TTS_CACHE wins over the data root."""
    monkeypatch.delenv("KAIZEN_TTS_CACHE", raising=False)
    assert default_cache_dir("/data") == os.path.join("/data", "tts_cache")

    monkeypatch.setenv("KAIZEN_TTS_CACHE", "/tmp/tts")
    assert default_cache_dir("/data") == "/tmp/tts"


def test_ssml_escapes_text() -> None:
    """Markup characters in narration text are escaped."""
    ssml = build_ssml("A<B & C", VOICE, "+20%")

    assert "A&lt;B &amp; C" in ssml
    assert 'rate="+20%"' in ssml
    assert f'name="{VOICE}"' in ssml


def test_azure_without_credentials_fails_cleanly(tmp_path, monkeypatch) -> None:
    """Missing Azure credentials are reported as a synthesis error."""
    monkeypatch.delenv("AZURE_SPEECH_KEY", raising=False)
    monkeypatch.delenv("AZURE_SPEECH_REGION", raising=False)
    cache = SpeechCache(str(tmp_path), AzureSpeechBackend())

    with pytest.raises(SynthesisError, match="AZURE_SPEECH_KEY"):
        cache.synthesize("取料", VOICE, "+0%")

    assert os.listdir(tmp_path) == []
