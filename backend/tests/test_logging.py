from __future__ import annotations

import io
import logging

import orjson
import pytest

from star_cache.core.errors import TransportError
from star_cache.core.logging import JsonFormatter, bind, configure_logging, get_logger
from star_cache.sync.pool import BoundedPool


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    urllib3_level = logging.getLogger("urllib3").level
    yield
    root.handlers = handlers
    root.setLevel(level)
    logging.getLogger("urllib3").setLevel(urllib3_level)


def test_json_formatter_flattens_context() -> None:
    record = logging.LogRecord("star_cache.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    record.ctx_repo = "a/x"

    payload = orjson.loads(JsonFormatter().format(record))

    assert payload["message"] == "hello world"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "star_cache.test"
    assert payload["repo"] == "a/x"
    assert payload["ts"].endswith("+00:00")
    assert "thread" in payload


def test_bound_logger_merges_context(caplog: pytest.LogCaptureFixture) -> None:
    log = bind(logging.getLogger("star_cache.test"), pool="readme")
    with caplog.at_level(logging.INFO, logger="star_cache.test"):
        log.info("done", extra={"ctx_unit": "a/x"})

    record = caplog.records[-1]
    assert record.ctx_pool == "readme"
    assert record.ctx_unit == "a/x"


def test_pool_failures_carry_unit_context(caplog: pytest.LogCaptureFixture) -> None:
    def worker(unit: str) -> str:
        raise TransportError("timeout")

    with caplog.at_level(logging.WARNING):
        BoundedPool(2, name="readme").run(["a/x"], worker, label=str)

    record = next(record for record in caplog.records if record.name == "star_cache.sync.pool")
    assert record.ctx_pool == "readme"
    assert record.ctx_unit == "a/x"
    assert "timeout" in record.getMessage()


def test_configure_logging_json_lines(restore_logging) -> None:
    stream = io.StringIO()
    configure_logging("INFO", use_json=True, stream=stream)

    get_logger("star_cache.test").info("ready", extra={"ctx_documents": 3})

    line = orjson.loads(stream.getvalue().splitlines()[-1])
    assert line["message"] == "ready"
    assert line["documents"] == 3
    assert logging.getLogger("urllib3").level == logging.WARNING


def test_debug_level_keeps_http_logs(restore_logging) -> None:
    stream = io.StringIO()
    configure_logging("DEBUG", use_json=False, stream=stream)

    get_logger("star_cache.test").debug("verbose")

    assert "DEBUG" in stream.getvalue()
    assert "star_cache.test: verbose" in stream.getvalue()
    assert logging.getLogger("urllib3").level == logging.DEBUG
