import logging

from curatorworks.logging_utils import configure_logging


def test_configure_logging_honours_env_override(monkeypatch, tmp_path):
    target_dir = tmp_path / "env_logs"
    monkeypatch.setenv("CURATORWORKS_LOG_DIR", str(target_dir))

    log_path = configure_logging("unit_test", include_console=False)
    logging.getLogger(__name__).info("env override works")

    assert log_path == target_dir / "unit_test.log"
    assert "env override works" in log_path.read_text()


def test_configure_logging_replaces_previous_handlers(tmp_path):
    first_path = configure_logging(
        "first_run", log_dir=tmp_path / "a", include_console=False
    )
    logging.getLogger(__name__).info("first run entry")
    second_path = configure_logging(
        "second_run", log_dir=tmp_path / "b", include_console=False
    )
    logging.getLogger(__name__).info("second run entry")

    assert "first run entry" in first_path.read_text()
    assert "second run entry" in second_path.read_text()
    assert "second run entry" not in first_path.read_text()


def test_configure_logging_quiets_http_client_loggers(tmp_path):
    configure_logging("quiet", log_dir=tmp_path, include_console=False)

    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("httpcore").level == logging.WARNING
