from __future__ import annotations

import pytest

from govassess.infrastructure.config import reset_settings
from scripts import run_server


@pytest.fixture(autouse=True)
def fresh_settings():
    reset_settings()
    yield
    reset_settings()


def test_main_runs_uvicorn_with_server_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SERVER_HOST", "127.0.0.1")
    monkeypatch.setenv("SERVER_PORT", "8123")

    calls: list[tuple[str, dict]] = []

    def fake_run(target: str, **kwargs) -> None:
        calls.append((target, kwargs))

    monkeypatch.setattr(run_server.uvicorn, "run", fake_run)

    run_server.main([])

    assert calls == [
        ("govassess.web.main:app", {"host": "127.0.0.1", "port": 8123, "reload": False})
    ]


def test_config_file_overrides_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    # Registered so the values exported from the file are removed afterwards.
    monkeypatch.setenv("SERVER_PORT", "8123")
    monkeypatch.setenv("SERVER_RELOAD", "false")
    config_file = tmp_path / "server.json"
    config_file.write_text('{"server": {"port": 9100, "reload": true}}')

    calls: list[tuple[str, dict]] = []
    monkeypatch.setattr(run_server.uvicorn, "run", lambda target, **kw: calls.append((target, kw)))

    run_server.main(["--config", str(config_file)])

    assert calls[0][1]["port"] == 9100
    assert calls[0][1]["reload"] is True
