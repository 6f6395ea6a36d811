from __future__ import annotations

import time

import pytest

from briefing_pipeline.config import get_settings


@pytest.fixture(autouse=True)
def _test_env(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = tmp_path_factory.mktemp("bp_test")
    (root / "data").mkdir(parents=True, exist_ok=True)
    (root / "logs").mkdir(parents=True, exist_ok=True)
    (root / "_state").mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("APP_ROOT", str(root))
    monkeypatch.setenv("BRIEFING_DATA_DIR", str(root / "data"))
    monkeypatch.setenv("BRIEFING_LOG_DIR", str(root / "logs"))
    monkeypatch.setenv("BRIEFING_STATE_DIR", str(root / "_state"))
    monkeypatch.setenv("GEMINI_API_KEY", "test-gemini-key-0000")
    monkeypatch.delenv("APP_SECRET_KEY", raising=False)
    monkeypatch.delenv("STRICT_SECRETS", raising=False)
    get_settings.cache_clear()

    from briefing_pipeline.utils.circuit import Circuit

    Circuit.reset_all()
    # backoff delays are real sleeps otherwise
    monkeypatch.setattr(time, "sleep", lambda _s: None)
