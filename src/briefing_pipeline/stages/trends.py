from __future__ import annotations

from dataclasses import dataclass, field

from briefing_pipeline.errors import GenerationError
from briefing_pipeline.jobs.context import StageContext

NAME = "trends"
GENERIC_TRENDS = ("General market conditions",)
MAX_TRENDS = 5


@dataclass(frozen=True, slots=True)
class TrendReport:
    industry_sector: str
    trends: list[str] = field(default_factory=list)
    fallback: bool = False

    def as_text(self) -> str:
        return ", ".join(self.trends)


def prompt_for(subject: str) -> str:
    return (
        f"For the company '{subject}', use your search tool to identify its primary industry "
        "sector and the top 3-5 most important current trends affecting that sector. "
        "Return ONLY a JSON object with two keys: 'industry_sector' (a string) and "
        "'trends' (an array of strings)."
    )


def _clean(items: object) -> list[str]:
    if not isinstance(items, list):
        return []
    out: list[str] = []
    for it in items:
        s = " ".join(str(it or "").split())
        if s and s not in out:
            out.append(s)
    return out[:MAX_TRENDS]


def discover(ctx: StageContext) -> TrendReport:
    """
    Sector + current trends for the subject. Never fails the job: an unusable
    reply degrades to a generic placeholder list.
    """
    log = ctx.bind_logger(stage=NAME)
    try:
        data = ctx.client.generate_json(
            prompt_for(ctx.subject),
            search_enabled=True,
            model=ctx.config.text_model,
            deadline=ctx.deadline,
        )
    except GenerationError as ex:
        log.warning("trends_fallback", reason=str(ex))
        return TrendReport(industry_sector="", trends=list(GENERIC_TRENDS), fallback=True)

    if not isinstance(data, dict):
        log.warning("trends_fallback", reason="payload is not an object")
        return TrendReport(industry_sector="", trends=list(GENERIC_TRENDS), fallback=True)

    sector = " ".join(str(data.get("industry_sector") or "").split())
    trends = _clean(data.get("trends"))
    if not trends:
        log.warning("trends_fallback", reason="empty trend list")
        return TrendReport(industry_sector=sector, trends=list(GENERIC_TRENDS), fallback=True)
    return TrendReport(industry_sector=sector, trends=trends)
