import logging

from ecoforecast.logging_config import setup_logging


def _own_handlers(root):
    return [h for h in root.handlers if getattr(h, "_ecoforecast", False)]


def test_setup_logging_is_idempotent():
    root = setup_logging(log_level="DEBUG")
    setup_logging(log_level="WARNING")
    assert len(_own_handlers(root)) == 1
    assert root.level == logging.WARNING


def test_setup_logging_writes_log_file(tmp_path):
    root = setup_logging(log_level="INFO", enable_file_logging=True, log_dir=str(tmp_path))
    logging.getLogger("ecoforecast.test").info("hello")
    for handler in _own_handlers(root):
        handler.flush()

    log_files = list(tmp_path.glob("ecoforecast_*.log"))
    assert len(log_files) == 1
    assert "hello" in log_files[0].read_text()

    # detach the file handler so tmp_path can be removed
    setup_logging(log_level="INFO")
