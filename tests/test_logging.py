import concurrent.futures
import logging

import pytest

from app.render_gateway_application import setup_logging


@pytest.fixture(autouse=True)
def cleanup_handlers():
    """Remove root handlers before and after each test."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    yield

    for handler in root_logger.handlers[:]:
        handler.flush()
        handler.close()
        root_logger.removeHandler(handler)
    root_logger.setLevel(logging.WARNING)


@pytest.fixture
def log_dir(tmp_path, monkeypatch):
    log_dir = tmp_path / "logs"
    monkeypatch.setenv("LOG_DIR", str(log_dir))
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    return log_dir


def flush_all() -> None:
    for handler in logging.getLogger().handlers:
        handler.flush()


def test_log_file_created_in_log_dir(log_dir):
    log_file = setup_logging()

    assert log_file.exists()
    assert log_file.parent == log_dir
    assert log_file.name.startswith("render-gateway_")
    assert log_file.name.endswith(".log")


def test_log_level_from_env(log_dir, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")

    setup_logging()

    assert logging.getLogger().getEffectiveLevel() == logging.DEBUG


def test_invalid_log_level_defaults_to_info(log_dir, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "INVALID")

    setup_logging()

    assert logging.getLogger().getEffectiveLevel() == logging.INFO


def test_log_message_format(log_dir):
    log_file = setup_logging()

    logging.getLogger("app.renderer").info("pdf render finished in 12 ms")
    flush_all()

    line = next(line for line in log_file.read_text().splitlines() if "pdf render finished" in line)
    timestamp, name, level, message = line.split(" - ")
    assert timestamp
    assert name == "app.renderer"
    assert level == "INFO"
    assert message == "pdf render finished in 12 ms"


def test_messages_below_level_are_dropped(log_dir):
    log_file = setup_logging()

    for level, msg in [(logging.DEBUG, "debug detail"), (logging.INFO, "info line"), (logging.ERROR, "error line")]:
        logging.log(level, msg)
    flush_all()

    content = log_file.read_text()
    assert "debug detail" not in content
    assert "info line" in content
    assert "error line" in content


def test_concurrent_logging(log_dir):
    log_file = setup_logging()

    with concurrent.futures.ThreadPoolExecutor(max_workers=4) as executor:
        list(executor.map(lambda i: logging.info("Concurrent message %d", i), range(100)))
    flush_all()

    content = log_file.read_text()
    for i in range(100):
        assert f"Concurrent message {i}\n" in content


def test_third_party_loggers_follow_level(log_dir, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "WARNING")

    setup_logging()

    for name in ("playwright", "pypdf", "uvicorn"):
        assert logging.getLogger(name).level == logging.WARNING
