import logging
import sys
from unittest.mock import patch

import pytest

from app import render_gateway_application
from app.render_gateway_application import DEFAULT_PORT, get_port


@pytest.fixture(autouse=True)
def reset_root_handlers():
    yield
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)


def test_get_port_prefers_cli(monkeypatch):
    monkeypatch.setenv("PORT", "8080")

    assert get_port(9999) == 9999


def test_get_port_from_env(monkeypatch):
    monkeypatch.setenv("PORT", "8080")

    assert get_port(None) == 8080


@pytest.mark.parametrize("value", [None, "", "http"])
def test_get_port_default(monkeypatch, value):
    if value is None:
        monkeypatch.delenv("PORT", raising=False)
    else:
        monkeypatch.setenv("PORT", value)

    assert get_port(None) == DEFAULT_PORT == 4300


def test_main_starts_server_on_cli_port(monkeypatch, tmp_path):
    log_dir = tmp_path / "logs"
    monkeypatch.setenv("LOG_DIR", str(log_dir))
    monkeypatch.setattr(sys, "argv", ["render-gateway", "--port", "9999"])
    started = []
    monkeypatch.setattr(render_gateway_application, "start_server", started.append)

    render_gateway_application.main()

    assert started == [9999]
    assert any(log_dir.glob("render-gateway_*.log"))


def test_main_uses_env_port_without_cli(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("PORT", "5123")
    monkeypatch.setattr(sys, "argv", ["render-gateway"])
    started = []
    monkeypatch.setattr(render_gateway_application, "start_server", started.append)

    render_gateway_application.main()

    assert started == [5123]


def test_start_server_runs_uvicorn():
    with patch("app.render_gateway_application.uvicorn.run") as run:
        render_gateway_application.start_server(4300)

    run.assert_called_once_with(app=render_gateway_application.render_controller.app, host="", port=4300)
