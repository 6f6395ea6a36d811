from __future__ import annotations

import json

import click

from briefing_pipeline.config import get_safe_config_report, get_settings
from briefing_pipeline.errors import JobNotFound, ValidationError
from briefing_pipeline.jobs.limits import get_pipeline_config
from briefing_pipeline.jobs.models import JobInput
from briefing_pipeline.jobs.status import StatusReporter
from briefing_pipeline.jobs.store import JobStore
from briefing_pipeline.storage.artifacts import ArtifactStore
from briefing_pipeline.utils.log import set_log_level


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=True))


def _reporter() -> StatusReporter:
    cfg = get_pipeline_config()
    return StatusReporter(JobStore(cfg.jobs_db), ArtifactStore(cfg.data_dir))


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL for this invocation")
def cli(log_level: str | None) -> None:
    """Company research briefings: run jobs, inspect them, serve the API."""
    if log_level:
        set_log_level(log_level)


@cli.command("run")
@click.argument("subject", type=str)
@click.option("--role", "role_hint", default="", help="Role the briefing should be tailored to")
@click.option("--audio/--no-audio", "wants_audio", default=False, show_default=True)
def run_cmd(subject: str, role_hint: str, wants_audio: bool) -> None:
    """
    Run one job in the foreground and print its final status.

    Example:
      briefing run "Acme Corp" --role "Data Engineer" --audio
    """
    from briefing_pipeline.jobs.runner import PipelineRunner
    from briefing_pipeline.web.app import build_client

    try:
        job_input = JobInput.build(subject, role_hint, wants_audio)
    except ValidationError as ex:
        raise click.BadParameter(str(ex), param_hint="SUBJECT") from ex

    cfg = get_pipeline_config()
    store = JobStore(cfg.jobs_db)
    artifacts = ArtifactStore(cfg.data_dir)
    runner = PipelineRunner(store, build_client(cfg), artifacts, cfg)
    job_id = store.create(job_input)
    click.echo(f"job {job_id} queued", err=True)
    runner.run(job_id)
    view = StatusReporter(store, artifacts).status(job_id)
    _echo_json(view)
    if view["status"] != "complete":
        click.get_current_context().exit(1)


@cli.command("status")
@click.argument("job_id", type=str)
def status_cmd(job_id: str) -> None:
    """Print the status view of JOB_ID."""
    try:
        _echo_json(_reporter().status(job_id))
    except JobNotFound as ex:
        raise click.ClickException(str(ex)) from ex


@cli.command("list")
@click.option("--limit", type=int, default=20, show_default=True)
@click.option("--status", "status_filter", default=None, help="Exact status, or a prefix ending in ':'")
def list_cmd(limit: int, status_filter: str | None) -> None:
    """List recent jobs, newest first."""
    for j in _reporter().store.list(limit=limit, status=status_filter):
        click.echo(f"{j.id}  {j.status:<28}  {j.created_at}  {j.input.subject}")


@cli.command("serve")
@click.option("--host", default=None, help="Defaults to HOST")
@click.option("--port", type=int, default=None, help="Defaults to PORT")
def serve_cmd(host: str | None, port: int | None) -> None:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    s = get_settings()
    uvicorn.run(
        "briefing_pipeline.web.app:create_app",
        factory=True,
        host=host or str(s.host),
        port=int(port or s.port),
        log_config=None,
    )


@cli.command("config")
def config_cmd() -> None:
    """Print the effective configuration (secrets shown as SET/UNSET only)."""
    _echo_json(get_safe_config_report())


if __name__ == "__main__":  # pragma: no cover
    cli()
