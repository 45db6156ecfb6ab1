import logging
import sys

from GeoDispatch.utils.logger import BRIDGED_LOGGERS, logger, setup_logging


def test_stdlib_records_reach_file_sink(monkeypatch, tmp_path):
    # setup_logging rewires global hooks; restore them after the test
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    monkeypatch.setattr(logging.root, "handlers", list(logging.root.handlers))
    for name in BRIDGED_LOGGERS:
        lg = logging.getLogger(name)
        monkeypatch.setattr(lg, "handlers", list(lg.handlers))
        monkeypatch.setattr(lg, "propagate", lg.propagate)

    log_path = tmp_path / "logs" / "geodispatch.log"
    try:
        setup_logging("INFO", {"to_file": True, "file_path": str(log_path), "show_function": True})
        logging.getLogger("aiohttp.web").warning("stale connection closed")
        logging.getLogger("aiohttp.access").info('127.0.0.1 "GET /health HTTP/1.1" 200 16')
        logger.complete()
    finally:
        logger.remove()
        logger.add(sys.stderr)

    text = log_path.read_text()
    assert "stale connection closed" in text
    # Successful access lines are demoted below INFO
    assert "GET /health" not in text
