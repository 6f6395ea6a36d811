from __future__ import annotations

from datetime import datetime, timezone

from briefing_pipeline.jobs.context import StageContext
from briefing_pipeline.jobs.models import ArtifactKind
from briefing_pipeline.stages.sections import SectionResult
from briefing_pipeline.stages.trends import TrendReport

NAME = "publish"


def compose(
    *,
    subject: str,
    role_hint: str,
    trends: TrendReport,
    sections: list[SectionResult],
    enrichment: str,
    generated_at: datetime | None = None,
) -> str:
    ts = (generated_at or datetime.now(tz=timezone.utc)).strftime("%Y-%m-%d")
    lines = [f"# Intelligence Briefing: {subject}", "", f"_Generated {ts}_"]
    if role_hint:
        lines.append(f"_Prepared for: {role_hint}_")
    if trends.industry_sector:
        lines.append(f"_Sector: {trends.industry_sector}_")
    lines += ["", f"**Key industry trends:** {trends.as_text()}", "", ""]
    head = "\n".join(lines)
    body = "".join(s.render() for s in sections)
    return head + body + enrichment.strip() + "\n"


def publish(ctx: StageContext, document: str) -> str:
    """Write the briefing under its job-addressed location and return that location."""
    location = ctx.artifacts.location_for(ctx.job_id, ctx.subject, ArtifactKind.PRIMARY.value)
    ctx.artifacts.write_text(location, document)
    ctx.bind_logger(stage=NAME).info("briefing_published", location=location, chars=len(document))
    return location
