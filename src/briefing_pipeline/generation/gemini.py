from __future__ import annotations

import base64
import json
import socket
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from briefing_pipeline.errors import ContentFailure, TransientFailure
from briefing_pipeline.generation.client import GenerationClient, RetryPolicy, VoiceSpec
from briefing_pipeline.jobs.limits import PipelineConfig

# Rate limit / server side trouble: the same request may succeed later.
RETRYABLE_HTTP = frozenset({408, 425, 429, 500, 502, 503, 504})

_SAFETY_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)


def _safety_settings() -> list[dict[str, str]]:
    return [{"category": c, "threshold": "BLOCK_NONE"} for c in _SAFETY_CATEGORIES]


def _http_error_detail(ex: urllib.error.HTTPError) -> str:
    try:
        body = ex.read().decode("utf-8", errors="replace")
    except Exception:
        body = ""
    try:
        msg = json.loads(body).get("error", {}).get("message") or body
    except Exception:
        msg = body
    return str(msg or ex.reason or "")[:300]


def _first_candidate(data: dict[str, Any]) -> dict[str, Any]:
    feedback = data.get("promptFeedback") or {}
    if feedback.get("blockReason"):
        raise ContentFailure(f"prompt blocked: {feedback['blockReason']}")
    candidates = data.get("candidates") or []
    if not candidates:
        raise ContentFailure("response has no candidates")
    cand = candidates[0] or {}
    finish = str(cand.get("finishReason") or "UNKNOWN")
    if finish != "STOP":
        raise ContentFailure(f"response incomplete (finish reason: {finish})")
    return cand


def _parts(cand: dict[str, Any]) -> list[dict[str, Any]]:
    return list(((cand.get("content") or {}).get("parts")) or [])


class GeminiTransport:
    """
    Gemini `generateContent` over plain HTTPS.

    Maps every failure onto TransientFailure / ContentFailure; never retries itself.
    """

    def __init__(self, *, api_key: str, base_url: str) -> None:
        if not str(api_key or "").strip():
            raise ValueError("GEMINI_API_KEY is not set")
        self._api_key = str(api_key).strip()
        self.base_url = str(base_url).rstrip("/")

    def _endpoint(self, model: str) -> str:
        q = urllib.parse.urlencode({"key": self._api_key})
        return f"{self.base_url}/models/{urllib.parse.quote(model)}:generateContent?{q}"

    def _post(self, model: str, payload: dict[str, Any], *, timeout_s: float) -> dict[str, Any]:
        body = json.dumps(payload).encode("utf-8")
        req = urllib.request.Request(self._endpoint(model), data=body, method="POST")
        req.add_header("Content-Type", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=float(timeout_s)) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as ex:
            detail = _http_error_detail(ex)
            if int(ex.code) in RETRYABLE_HTTP:
                raise TransientFailure(f"HTTP {ex.code} from {model}: {detail}") from ex
            raise ContentFailure(f"HTTP {ex.code} from {model}: {detail}") from ex
        except urllib.error.URLError as ex:
            raise TransientFailure(f"{model} unreachable: {ex.reason}") from ex
        except (TimeoutError, socket.timeout) as ex:
            raise TransientFailure(f"{model} timed out after {timeout_s:.0f}s") from ex
        except (ConnectionError, OSError) as ex:
            raise TransientFailure(f"{model} connection error: {ex}") from ex
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as ex:
            raise ContentFailure(f"{model} returned a non-JSON envelope") from ex
        if not isinstance(data, dict):
            raise ContentFailure(f"{model} returned an unexpected envelope")
        return data

    def text(
        self,
        *,
        model: str,
        prompt: str,
        search_enabled: bool,
        response_json: bool,
        timeout_s: float,
    ) -> str:
        payload: dict[str, Any] = {
            "contents": [{"parts": [{"text": prompt}]}],
            "safetySettings": _safety_settings(),
        }
        if search_enabled:
            payload["tools"] = [{"google_search": {}}]
        elif response_json:
            # The API rejects a JSON mime type together with tools; grounded calls
            # rely on payload extraction instead.
            payload["generationConfig"] = {"responseMimeType": "application/json"}
        cand = _first_candidate(self._post(model, payload, timeout_s=timeout_s))
        return "".join(str(p.get("text") or "") for p in _parts(cand))

    def speech(self, *, model: str, script: str, voice: VoiceSpec, timeout_s: float) -> bytes:
        if len(voice.speakers) >= 2:
            speech_config: dict[str, Any] = {
                "multiSpeakerVoiceConfig": {
                    "speakerVoiceConfigs": [
                        {
                            "speaker": name,
                            "voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice_name}},
                        }
                        for name, voice_name in voice.speakers
                    ]
                }
            }
        else:
            voice_name = voice.speakers[0][1] if voice.speakers else voice.default_voice
            speech_config = {"voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice_name}}}
        payload = {
            "contents": [{"parts": [{"text": script}]}],
            "generationConfig": {"responseModalities": ["AUDIO"], "speechConfig": speech_config},
        }
        cand = _first_candidate(self._post(model, payload, timeout_s=timeout_s))
        for part in _parts(cand):
            inline = part.get("inlineData") or {}
            data = inline.get("data")
            if data:
                try:
                    return base64.b64decode(data, validate=False)
                except (ValueError, TypeError) as ex:
                    raise ContentFailure("audio payload is not valid base64") from ex
        raise ContentFailure("response carried no audio data")


def make_client(config: PipelineConfig, *, api_key: str, base_url: str) -> GenerationClient:
    return GenerationClient(
        transport=GeminiTransport(api_key=api_key, base_url=base_url),
        text_model=config.text_model,
        tts_model=config.tts_model,
        policy=RetryPolicy(
            attempts=config.generation_attempts,
            base_s=config.retry_base_s,
            cap_s=config.retry_cap_s,
            timeout_s=config.generation_timeout_s,
            cb_fail_threshold=config.cb_fail_threshold,
            cb_cooldown_s=config.cb_cooldown_s,
        ),
    )
