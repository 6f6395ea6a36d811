from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

from briefing_pipeline.errors import ContentFailure, GenerationError, TransientFailure
from briefing_pipeline.jobs.context import StageContext
from briefing_pipeline.utils.retry import retry_call

UNAVAILABLE_MARKER = "Content unavailable"


@dataclass(frozen=True, slots=True)
class Section:
    title: str
    prompt: Callable[[str, str], str]  # (subject, trends text) -> prompt

    @property
    def slug(self) -> str:
        return re.sub(r"[^a-z0-9]+", "-", self.title.lower()).strip("-")


@dataclass(frozen=True, slots=True)
class SectionResult:
    title: str
    body: str
    ok: bool
    attempts: int
    error: str | None = None

    def render(self) -> str:
        return f"## {self.title}\n\n{self.body.strip()}\n\n"


SECTIONS: tuple[Section, ...] = (
    Section(
        "Company Overview",
        lambda subject, _trends: f"Provide a concise overview of '{subject}' in 2-3 paragraphs.",
    ),
    Section(
        "Strategic Response to Trends",
        lambda subject, trends: (
            f"Analyze how '{subject}' is strategically responding to these trends: {trends}. "
            "Summarize your findings in 3-4 concise paragraphs. "
            "Use your search tool to find specific examples."
        ),
    ),
    Section(
        "Key Leadership",
        lambda subject, _trends: (
            f"Identify the top 3-5 key C-suite executives at '{subject}' (CEO, CFO, CTO, etc.) "
            "and provide a one-paragraph summary for each."
        ),
    ),
    Section(
        "Competitive Landscape",
        lambda subject, _trends: (
            f"Identify the main competitors of '{subject}' and briefly describe their market "
            "position in 2-3 paragraphs."
        ),
    ),
    Section(
        "Recent News & Developments",
        lambda subject, _trends: (
            f"Summarize the 3 most significant recent news articles or developments concerning "
            f"'{subject}'. Cite your sources."
        ),
    ),
)


def placeholder(reason: str) -> str:
    return f"_{UNAVAILABLE_MARKER}: this section could not be generated ({reason})._"


def write_section(ctx: StageContext, section: Section, trends_text: str) -> SectionResult:
    """
    Research and write one section with its own bounded retry loop on top of the
    client's transport retries. Exhaustion yields a visible placeholder, not an error.

    A transient failure repeats the same request. A content failure is only retried
    as a different request: once, on the fallback text model.
    """
    log = ctx.bind_logger(stage="section", section=section.slug)
    prompt = section.prompt(ctx.subject, trends_text)
    state = {"n": 0, "model": ctx.config.research_model}

    def _once() -> str:
        state["n"] += 1
        return ctx.client.generate_text(
            prompt,
            search_enabled=True,
            model=state["model"],
            deadline=ctx.deadline,
        )

    def _retryable(ex: BaseException) -> bool:
        if isinstance(ex, TransientFailure):
            return True
        if isinstance(ex, ContentFailure) and state["model"] != ctx.config.text_model:
            state["model"] = ctx.config.text_model
            return True
        return False

    def _on_retry(attempt: int, delay: float, ex: BaseException) -> None:
        log.warning(
            "section_retry",
            attempt=attempt,
            delay_s=round(delay, 2),
            model=state["model"],
            error=str(ex),
        )

    try:
        body = retry_call(
            _once,
            attempts=ctx.config.section_attempts,
            base=ctx.config.retry_base_s,
            cap=ctx.config.retry_cap_s,
            retry_if=_retryable,
            on_retry=_on_retry,
        )
    except GenerationError as ex:
        log.warning("section_unavailable", attempts=state["n"], error=str(ex))
        return SectionResult(
            title=section.title,
            body=placeholder(type(ex).__name__),
            ok=False,
            attempts=state["n"],
            error=str(ex),
        )
    return SectionResult(title=section.title, body=body, ok=True, attempts=state["n"])
