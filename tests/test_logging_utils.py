from __future__ import annotations

import logging

from immem.logging_utils import (
    ACCESS_FORMATTER_PATH,
    LemmaPathAccessFormatter,
    build_uvicorn_log_config,
    debug_enabled,
    debug_log,
    readable_request_path,
    set_debug_logging,
)


def test_debug_log_only_when_enabled(capsys) -> None:
    debug_log("selector", "hidden")
    set_debug_logging(True)
    try:
        assert debug_enabled()
        debug_log("selector", "Found target word: 猫")
    finally:
        set_debug_logging(False)
    captured = capsys.readouterr()
    assert captured.out == ""
    assert captured.err == "[immem selector debug] Found target word: 猫\n"


def test_uvicorn_log_config_uses_lemma_path_formatter() -> None:
    config = build_uvicorn_log_config()
    assert config["formatters"]["access"]["()"] == ACCESS_FORMATTER_PATH
    assert config["loggers"]["uvicorn"]["level"] == "INFO"
    debug_config = build_uvicorn_log_config(debug=True)
    assert all(logger["level"] == "DEBUG" for logger in debug_config["loggers"].values())
    assert build_uvicorn_log_config()["loggers"]["uvicorn"]["level"] == "INFO"


def test_readable_request_path_keeps_query_encoded() -> None:
    assert readable_request_path("/api/vocab/%E7%8C%AB") == "/api/vocab/猫"
    assert readable_request_path("/api/vocab/%E7%8C%AB?q=%26") == "/api/vocab/猫?q=%26"
    assert readable_request_path(None) is None


def test_access_formatter_decodes_lemma_path() -> None:
    formatter = LemmaPathAccessFormatter('%(client_addr)s - "%(request_line)s" %(status_code)s', use_colors=False)
    record = logging.LogRecord(
        "uvicorn.access",
        logging.INFO,
        __file__,
        1,
        '%s - "%s %s HTTP/%s" %d',
        ("127.0.0.1:5000", "GET", "/api/vocab/%E7%8C%AB", "1.1", 200),
        None,
    )
    assert "GET /api/vocab/猫 HTTP/1.1" in formatter.format(record)
    assert record.args[2] == "/api/vocab/%E7%8C%AB"
