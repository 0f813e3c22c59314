import asyncio
import logging

import pytest

from pdf_shrinker.logging_setup import (
    CONSOLE_HANDLER,
    FILE_HANDLER,
    RequestIdFilter,
    bind_request_id,
    request_logger,
    setup_logging,
    unbind_request_id,
)


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("t", logging.INFO, __file__, 1, "msg", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture()
def root_logger():
    root = logging.getLogger()
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler.get_name() in {CONSOLE_HANDLER, FILE_HANDLER}:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


class TestRequestIdFilter:
    def test_fills_missing_request_id(self) -> None:
        record = _record()
        assert RequestIdFilter().filter(record) is True
        assert record.request_id == "-"

    def test_keeps_existing_request_id(self) -> None:
        record = _record(request_id="abc")
        RequestIdFilter().filter(record)
        assert record.request_id == "abc"

    def test_uses_bound_request_id(self) -> None:
        token = bind_request_id("r7")
        try:
            record = _record()
            RequestIdFilter().filter(record)
        finally:
            unbind_request_id(token)

        assert record.request_id == "r7"
        after = _record()
        RequestIdFilter().filter(after)
        assert after.request_id == "-"

    def test_bound_request_id_reaches_worker_threads(self) -> None:
        def filtered() -> str:
            record = _record()
            RequestIdFilter().filter(record)
            return record.request_id

        async def scenario() -> str:
            token = bind_request_id("r8")
            try:
                return await asyncio.to_thread(filtered)
            finally:
                unbind_request_id(token)

        assert asyncio.run(scenario()) == "r8"


def test_request_logger_tags_records(caplog) -> None:
    caplog.set_level(logging.INFO, logger="pdf_shrinker.test")
    request_logger("pdf_shrinker.test", "r42").info("hello")

    assert caplog.records[-1].request_id == "r42"
    assert caplog.records[-1].getMessage() == "hello"


class TestSetupLogging:
    def test_writes_to_rotating_file(self, tmp_path, root_logger) -> None:
        setup_logging(tmp_path / "logs", level="DEBUG")

        token = bind_request_id("abc123")
        try:
            logging.getLogger("pdf_shrinker.test").info("stored %s", "x")
        finally:
            unbind_request_id(token)
        for handler in root_logger.handlers:
            handler.flush()

        text = (tmp_path / "logs" / "pdf_shrinker.log").read_text(encoding="utf-8")
        assert "request_id=abc123 stored x" in text
        assert root_logger.level == logging.DEBUG

    def test_second_call_adds_no_handlers(self, tmp_path, root_logger) -> None:
        setup_logging(tmp_path / "logs")
        setup_logging(tmp_path / "logs", level="WARNING")

        names = [h.get_name() for h in root_logger.handlers]
        assert names.count(CONSOLE_HANDLER) == 1
        assert names.count(FILE_HANDLER) == 1
        assert root_logger.level == logging.WARNING

    def test_quiets_access_log(self, tmp_path, root_logger) -> None:
        setup_logging(tmp_path / "logs")
        assert logging.getLogger("uvicorn.access").level == logging.WARNING
