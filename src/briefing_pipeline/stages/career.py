from __future__ import annotations

from briefing_pipeline.errors import GenerationError, StageFailure
from briefing_pipeline.jobs.context import StageContext

NAME = "career"
ADVISORY_SECTIONS = (
    "Potential Industry Disruption",
    "Tailored CV Points",
    "Insightful Interview Questions",
)
# Below this the factual briefing is not worth coaching on.
MIN_BRIEFING_CHARS = 200


def prompt_for(briefing: str, role_hint: str = "") -> str:
    titles = ", ".join(f"'{t}'" for t in ADVISORY_SECTIONS)
    p = (
        "Act as a career coach. Based *only* on the following briefing, add three new "
        f"sections: {titles}. Format each as a Markdown '## ' heading followed by its content. "
    )
    if role_hint:
        p += f"Tailor the CV points and questions for a '{role_hint}' role. "
    return p + "Here is the briefing:\n\n" + briefing


def enrich(ctx: StageContext, briefing: str) -> str:
    """
    Role-tailored advisory sections, conditioned only on the briefing text (no search).
    """
    text = str(briefing or "").strip()
    if len(text) < MIN_BRIEFING_CHARS:
        raise StageFailure(NAME, "briefing content is empty or too short to enrich")
    try:
        out = ctx.client.generate_text(
            prompt_for(text, ctx.job_input.role_hint),
            search_enabled=False,
            model=ctx.config.text_model,
            deadline=ctx.deadline,
        )
    except GenerationError as ex:
        raise StageFailure(NAME, f"could not generate career insights: {ex}") from ex
    return out.strip()
