from __future__ import annotations

import pytest

from briefing_pipeline.config import get_settings
from briefing_pipeline.utils.log import bind_job, job_id_var, redact, redact_event


def test_redacts_google_keys_and_query_params() -> None:
    url = "https://generativelanguage.googleapis.com/v1beta/models/m:generateContent?key=abc123XYZ&alt=json"
    out = redact(f"POST {url} failed")
    assert "abc123XYZ" not in out
    assert "alt=json" in out

    key = "AIza" + "S" * 35
    assert key not in redact(f"using {key} now")
    assert "tok123456789" not in redact("Authorization: Bearer tok123456789")
    assert "hunter22" not in redact("password=hunter22 retry")


def test_redacts_configured_secret_literals(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "literal-secret-value-987")
    get_settings.cache_clear()
    ev = redact_event(None, None, {"msg": "upstream echoed literal-secret-value-987", "n": 3})
    assert "literal-secret-value-987" not in ev["msg"]
    assert ev["n"] == 3


def test_bind_job_sets_and_resets_context() -> None:
    assert job_id_var.get() is None
    with bind_job("job-1"):
        assert job_id_var.get() == "job-1"
    assert job_id_var.get() is None
