from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.main import app, build_broker
from app.settings import Settings
from broker.bus import EventBus


def test_build_broker_selects_backend_from_url() -> None:
    assert isinstance(build_broker(Settings(BROKER_URL="memory://")), EventBus)
    with pytest.raises(ValueError):
        build_broker(Settings(BROKER_URL="amqp://localhost"))


def test_service_reports_tasks_and_tiers(tmp_path, monkeypatch) -> None:
    schedules = tmp_path / "schedules.yaml"
    schedules.write_text(
        "- name: news\n  refresh_rate_seconds: 60\n  keywords: [nyt]\n", encoding="utf-8"
    )
    monkeypatch.setenv("DB_PATH", str(tmp_path / "app.db"))
    monkeypatch.setenv("BROKER_URL", "memory://")
    monkeypatch.setenv("SCHEDULES_FILE", str(schedules))
    monkeypatch.setenv("DEFAULT_REFRESH_RATE_MINUTES", "5")

    with TestClient(app) as client:
        health = client.get("/health").json()
        tiers = client.get("/tiers").json()

    assert health == {"status": "ok", "tasks": {"scheduler": True, "feedback": True}}
    assert tiers == {"default_rate_seconds": 300, "rates": [60, 300]}
