from __future__ import annotations

import base64
import io
import json
import urllib.error
import urllib.request

import pytest

from briefing_pipeline.errors import ContentFailure, JobTimeout, TransientFailure
from briefing_pipeline.generation.client import VoiceSpec
from briefing_pipeline.generation.gemini import GeminiTransport
from briefing_pipeline.jobs.watchdog import Deadline
from briefing_pipeline.utils.circuit import Circuit
from tests._helpers.fakes import FakeTransport, make_client


def test_transient_failures_are_retried() -> None:
    calls = {"n": 0}

    def flaky(_prompt: str) -> str:
        calls["n"] += 1
        if calls["n"] < 3:
            raise TransientFailure("HTTP 503")
        return "  hello  "

    client = make_client(FakeTransport(text=flaky), attempts=3)
    assert client.generate_text("hi") == "hello"
    assert calls["n"] == 3


def test_transient_failures_exhaust_attempts() -> None:
    calls = {"n": 0}

    def down(_prompt: str) -> str:
        calls["n"] += 1
        raise TransientFailure("HTTP 429")

    client = make_client(FakeTransport(text=down), attempts=3)
    with pytest.raises(TransientFailure):
        client.generate_text("hi")
    assert calls["n"] == 3


def test_content_failure_is_not_retried() -> None:
    calls = {"n": 0}

    def blocked(_prompt: str) -> str:
        calls["n"] += 1
        raise ContentFailure("prompt blocked")

    client = make_client(FakeTransport(text=blocked))
    with pytest.raises(ContentFailure):
        client.generate_text("hi")
    assert calls["n"] == 1


@pytest.mark.parametrize("reply", ["", "   \n  "])
def test_empty_reply_is_content_failure(reply: str) -> None:
    t = FakeTransport(text=lambda _p: reply)
    with pytest.raises(ContentFailure):
        make_client(t).generate_text("hi")
    assert len(t.calls) == 1


def test_json_replies_must_parse() -> None:
    client = make_client(FakeTransport(text=lambda _p: "no json here"))
    with pytest.raises(ContentFailure):
        client.generate_json("give me json")
    ok = make_client(FakeTransport(text=lambda _p: 'Result: {"trends": ["a"]}'))
    assert ok.generate_json("give me json") == {"trends": ["a"]}


def test_model_and_flags_are_forwarded() -> None:
    t = FakeTransport(text=lambda _p: "ok")
    make_client(t).generate_text("p", search_enabled=True, model="fake-pro")
    call = t.calls[-1]
    assert call["model"] == "fake-pro"
    assert call["search_enabled"] is True
    assert call["response_json"] is False


def test_timeout_is_capped_by_deadline() -> None:
    t = FakeTransport(text=lambda _p: "ok")
    make_client(t).generate_text("p", deadline=Deadline(timeout_s=2.0))
    assert 0 < t.calls[-1]["timeout_s"] <= 2.0


def test_expired_deadline_stops_calls() -> None:
    t = FakeTransport(text=lambda _p: "ok")
    with pytest.raises(JobTimeout):
        make_client(t).generate_text("p", deadline=Deadline(timeout_s=0.0))
    assert t.calls == []


def test_open_circuit_short_circuits() -> None:
    c = Circuit.get("generation:fake-flash", threshold=1, cooldown_s=3600)
    c.mark_failure()
    t = FakeTransport(text=lambda _p: "ok")
    with pytest.raises(TransientFailure, match="circuit open"):
        make_client(t).generate_text("p")
    assert t.calls == []


def test_generate_audio() -> None:
    t = FakeTransport()
    voice = VoiceSpec(speakers=(("Host", "Kore"), ("Analyst", "Puck")))
    pcm = make_client(t).generate_audio("Host: hi\nAnalyst: hello", voice)
    assert pcm and isinstance(pcm, bytes)
    assert t.calls[-1]["model"] == "fake-tts"

    with pytest.raises(ContentFailure):
        make_client(t).generate_audio("   ", voice)
    with pytest.raises(ContentFailure):
        make_client(FakeTransport(speech=lambda _s: b"")).generate_audio("Host: hi", voice)


# --- Gemini transport (HTTP mocked at urlopen) ---


class _Resp(io.BytesIO):
    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


def _reply(payload: dict) -> _Resp:
    return _Resp(json.dumps(payload).encode("utf-8"))


def _http_error(code: int) -> urllib.error.HTTPError:
    body = io.BytesIO(json.dumps({"error": {"message": f"status {code}"}}).encode("utf-8"))
    return urllib.error.HTTPError("https://example.invalid", code, "err", {}, body)


def _transport() -> GeminiTransport:
    return GeminiTransport(api_key="AIzaFAKEKEY000000000000000000", base_url="https://example.invalid/v1beta")


def test_gemini_text_request_shape(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict = {}

    def fake_urlopen(req, timeout):
        seen["url"] = req.full_url
        seen["body"] = json.loads(req.data.decode("utf-8"))
        seen["timeout"] = timeout
        return _reply(
            {"candidates": [{"finishReason": "STOP", "content": {"parts": [{"text": "a"}, {"text": "b"}]}}]}
        )

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    out = _transport().text(model="m1", prompt="hello", search_enabled=True, response_json=True, timeout_s=7)
    assert out == "ab"
    assert "/models/m1:generateContent?key=" in seen["url"]
    assert seen["body"]["tools"] == [{"google_search": {}}]
    assert "generationConfig" not in seen["body"]
    assert seen["timeout"] == 7.0


@pytest.mark.parametrize(
    "payload",
    [
        {"promptFeedback": {"blockReason": "SAFETY"}},
        {"candidates": []},
        {"candidates": [{"finishReason": "MAX_TOKENS", "content": {"parts": [{"text": "cut"}]}}]},
        {"candidates": [{"finishReason": "SAFETY"}]},
    ],
)
def test_gemini_unusable_replies(monkeypatch: pytest.MonkeyPatch, payload: dict) -> None:
    monkeypatch.setattr(urllib.request, "urlopen", lambda req, timeout: _reply(payload))
    with pytest.raises(ContentFailure):
        _transport().text(model="m", prompt="p", search_enabled=False, response_json=False, timeout_s=1)


@pytest.mark.parametrize("code,exc", [(429, TransientFailure), (503, TransientFailure), (400, ContentFailure)])
def test_gemini_http_errors(monkeypatch: pytest.MonkeyPatch, code: int, exc) -> None:
    def boom(req, timeout):
        raise _http_error(code)

    monkeypatch.setattr(urllib.request, "urlopen", boom)
    with pytest.raises(exc):
        _transport().text(model="m", prompt="p", search_enabled=False, response_json=False, timeout_s=1)


def test_gemini_network_errors_are_transient(monkeypatch: pytest.MonkeyPatch) -> None:
    def down(req, timeout):
        raise urllib.error.URLError("connection refused")

    monkeypatch.setattr(urllib.request, "urlopen", down)
    with pytest.raises(TransientFailure):
        _transport().text(model="m", prompt="p", search_enabled=False, response_json=False, timeout_s=1)


def test_gemini_speech_multi_speaker(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict = {}
    pcm = b"\x00\x01" * 8

    def fake_urlopen(req, timeout):
        seen["body"] = json.loads(req.data.decode("utf-8"))
        return _reply(
            {
                "candidates": [
                    {
                        "finishReason": "STOP",
                        "content": {
                            "parts": [{"inlineData": {"mimeType": "audio/L16", "data": base64.b64encode(pcm).decode()}}]
                        },
                    }
                ]
            }
        )

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    voice = VoiceSpec(speakers=(("Host", "Kore"), ("Analyst", "Puck")))
    assert _transport().speech(model="tts", script="Host: hi", voice=voice, timeout_s=1) == pcm
    cfg = seen["body"]["generationConfig"]
    assert cfg["responseModalities"] == ["AUDIO"]
    speakers = cfg["speechConfig"]["multiSpeakerVoiceConfig"]["speakerVoiceConfigs"]
    assert [s["speaker"] for s in speakers] == ["Host", "Analyst"]


def test_gemini_requires_api_key() -> None:
    with pytest.raises(ValueError):
        GeminiTransport(api_key="", base_url="https://example.invalid")
