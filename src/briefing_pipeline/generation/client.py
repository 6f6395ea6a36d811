from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

from briefing_pipeline.errors import ContentFailure, TransientFailure
from briefing_pipeline.jobs.watchdog import Deadline, unbounded
from briefing_pipeline.ops.metrics import generation_calls
from briefing_pipeline.utils.circuit import Circuit
from briefing_pipeline.utils.log import logger
from briefing_pipeline.utils.payload import extract_json_payload
from briefing_pipeline.utils.retry import retry_call

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class VoiceSpec:
    """
    Voices for speech synthesis.

    speakers: (speaker label as written in the script, prebuilt voice name); two or
    more entries select multi-speaker synthesis.
    """

    speakers: tuple[tuple[str, str], ...] = ()
    default_voice: str = "Kore"


class Transport(Protocol):
    """One raw call to the generation service; raises TransientFailure / ContentFailure."""

    def text(
        self,
        *,
        model: str,
        prompt: str,
        search_enabled: bool,
        response_json: bool,
        timeout_s: float,
    ) -> str: ...

    def speech(self, *, model: str, script: str, voice: VoiceSpec, timeout_s: float) -> bytes: ...


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    attempts: int = 3
    base_s: float = 1.0
    cap_s: float = 8.0
    jitter: bool = True
    timeout_s: float = 180.0
    cb_fail_threshold: int = 5
    cb_cooldown_s: float = 60.0


@dataclass(slots=True)
class GenerationClient:
    """
    Retrying adapter around the generation service.

    Only TransientFailure is retried (bounded attempts, capped exponential backoff);
    ContentFailure surfaces on the first occurrence so the calling stage can fall back.
    """

    transport: Transport
    text_model: str
    tts_model: str
    policy: RetryPolicy = field(default_factory=RetryPolicy)

    def _circuit(self, model: str) -> Circuit:
        return Circuit.get(
            f"generation:{model}",
            threshold=self.policy.cb_fail_threshold,
            cooldown_s=self.policy.cb_cooldown_s,
        )

    def _call(self, kind: str, model: str, deadline: Deadline, fn: Callable[[float], T]) -> T:
        circuit = self._circuit(model)

        def _once() -> T:
            timeout_s = deadline.cap(self.policy.timeout_s)
            if not circuit.allow():
                generation_calls.labels(kind=kind, outcome="circuit_open").inc()
                raise TransientFailure(f"circuit open for {model}")
            try:
                out = fn(timeout_s)
            except TransientFailure as ex:
                circuit.mark_failure(str(ex))
                generation_calls.labels(kind=kind, outcome="transient").inc()
                raise
            except ContentFailure:
                # the service answered; not a health problem
                circuit.mark_success()
                generation_calls.labels(kind=kind, outcome="content").inc()
                raise
            circuit.mark_success()
            generation_calls.labels(kind=kind, outcome="ok").inc()
            return out

        def _on_retry(attempt: int, delay: float, ex: BaseException) -> None:
            logger.warning(
                "generation_retry",
                kind=kind,
                model=model,
                attempt=attempt,
                delay_s=round(delay, 2),
                error=str(ex),
            )

        return retry_call(
            _once,
            attempts=self.policy.attempts,
            base=self.policy.base_s,
            cap=self.policy.cap_s,
            jitter=self.policy.jitter,
            retry_if=lambda ex: isinstance(ex, TransientFailure),
            on_retry=_on_retry,
        )

    def generate_text(
        self,
        prompt: str,
        *,
        search_enabled: bool = False,
        response_json: bool = False,
        model: str | None = None,
        deadline: Deadline | None = None,
    ) -> str:
        """
        Return the reply text, trimmed. Empty replies and, when `response_json` is set,
        replies without a valid JSON payload are ContentFailure.
        """
        mdl = str(model or self.text_model)

        def _fn(timeout_s: float) -> str:
            out = self.transport.text(
                model=mdl,
                prompt=prompt,
                search_enabled=bool(search_enabled),
                response_json=bool(response_json),
                timeout_s=timeout_s,
            )
            text = str(out or "").strip()
            if not text:
                raise ContentFailure(f"{mdl} returned an empty reply")
            if response_json:
                extract_json_payload(text)
            return text

        return self._call("text", mdl, deadline or unbounded(), _fn)

    def generate_json(
        self,
        prompt: str,
        *,
        search_enabled: bool = False,
        model: str | None = None,
        deadline: Deadline | None = None,
    ) -> Any:
        text = self.generate_text(
            prompt,
            search_enabled=search_enabled,
            response_json=True,
            model=model,
            deadline=deadline,
        )
        return extract_json_payload(text)

    def generate_audio(
        self,
        script: str,
        voice: VoiceSpec,
        *,
        model: str | None = None,
        deadline: Deadline | None = None,
    ) -> bytes:
        mdl = str(model or self.tts_model)
        if not str(script or "").strip():
            raise ContentFailure("refusing to synthesize an empty script")

        def _fn(timeout_s: float) -> bytes:
            audio = self.transport.speech(model=mdl, script=script, voice=voice, timeout_s=timeout_s)
            if not audio:
                raise ContentFailure(f"{mdl} returned no audio")
            return bytes(audio)

        return self._call("audio", mdl, deadline or unbounded(), _fn)
