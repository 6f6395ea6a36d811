from __future__ import annotations

import json
import threading
from collections.abc import Callable
from pathlib import Path

from briefing_pipeline.errors import ContentFailure
from briefing_pipeline.generation.client import GenerationClient, RetryPolicy, VoiceSpec
from briefing_pipeline.jobs.limits import PipelineConfig

TRENDS_REPLY = "```json\n" + json.dumps(
    {"industry_sector": "Industrial widgets", "trends": ["Automation", "Supply chain resilience"]}
) + "\n```"

CAREER_REPLY = (
    "## Potential Industry Disruption\n\nRobotics may commoditize widget assembly.\n\n"
    "## Tailored CV Points\n\n- Shipped a forecasting model for widget demand.\n\n"
    "## Insightful Interview Questions\n\n1. How is automation changing your margins?\n"
)

PODCAST_REPLY = (
    "Host: Welcome to the briefing. Today we look at Acme Corp.\n"
    "**Analyst:** Thanks. Acme makes industrial widgets and is investing in automation.\n"
    "(music fades)\n"
    "Host: What should candidates know?\n"
    "Analyst: Ask about the supply chain program.\n"
)


def section_reply(prompt: str) -> str:
    return ("Researched findings for this section. " * 8).strip() + f" [{len(prompt)}]"


def default_text(prompt: str) -> str:
    if "Return ONLY a JSON object" in prompt:
        return TRENDS_REPLY
    if prompt.startswith("Act as a career coach"):
        return CAREER_REPLY
    if "podcast script" in prompt:
        return PODCAST_REPLY
    return section_reply(prompt)


def default_speech(script: str) -> bytes:
    return b"\x01\x00" * 2400


class FakeTransport:
    """
    Scripted stand-in for the Gemini transport. Handlers receive the prompt/script and
    return a reply or raise TransientFailure / ContentFailure.
    """

    def __init__(
        self,
        *,
        text: Callable[[str], str] | None = None,
        speech: Callable[[str], bytes] | None = None,
    ) -> None:
        self.text_handler = text or default_text
        self.speech_handler = speech or default_speech
        self.calls: list[dict] = []
        self._lock = threading.Lock()

    def text(self, *, model, prompt, search_enabled, response_json, timeout_s) -> str:
        with self._lock:
            self.calls.append(
                {
                    "kind": "text",
                    "model": model,
                    "prompt": prompt,
                    "search_enabled": search_enabled,
                    "response_json": response_json,
                    "timeout_s": timeout_s,
                }
            )
        return self.text_handler(prompt)

    def speech(self, *, model, script, voice: VoiceSpec, timeout_s) -> bytes:
        with self._lock:
            self.calls.append({"kind": "speech", "model": model, "script": script, "voice": voice})
        return self.speech_handler(script)

    def prompts(self, kind: str = "text") -> list[str]:
        return [c.get("prompt") or c.get("script") for c in self.calls if c["kind"] == kind]


def always_content_failure(_prompt: str) -> str:
    raise ContentFailure("blocked by safety filter")


def make_client(transport: FakeTransport, *, attempts: int = 3) -> GenerationClient:
    return GenerationClient(
        transport=transport,
        text_model="fake-flash",
        tts_model="fake-tts",
        policy=RetryPolicy(attempts=attempts, base_s=0.0, cap_s=0.0, jitter=False, timeout_s=5.0),
    )


def make_config(root: Path, **overrides) -> PipelineConfig:
    kw = dict(
        data_dir=root / "data",
        jobs_db=root / "_state" / "jobs.db",
        log_dir=root / "logs",
        concurrency=2,
        job_timeout_s=60.0,
        retry_base_s=0.0,
        retry_cap_s=0.0,
        section_attempts=2,
        text_model="fake-flash",
        research_model="fake-pro",
        tts_model="fake-tts",
    )
    kw.update(overrides)
    return PipelineConfig(**kw)


def fake_encode(**kw) -> Path:
    """Drop-in for encode_pcm_to_mp3 that skips ffmpeg."""
    dst = Path(kw["dst"])
    dst.parent.mkdir(parents=True, exist_ok=True)
    dst.write_bytes(b"ID3fake-mp3" + Path(kw["src"]).read_bytes()[:16])
    return dst
