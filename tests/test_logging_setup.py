from pathlib import Path

from loguru import logger

from docsync.logging_setup import _resolve_level, configure_logging


def test_resolve_level() -> None:
    assert _resolve_level(None) == "INFO"
    assert _resolve_level("warn") == "WARNING"
    assert _resolve_level(" debug ") == "DEBUG"
    assert _resolve_level("chatty") == "INFO"


def test_file_sink_receives_messages(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "docsync.log"
    configure_logging("INFO", log_file=log_file)
    logger.debug("hidden detail")
    logger.info("indexed {} chunks", 3)
    configure_logging("INFO")
    text = log_file.read_text(encoding="utf-8")
    assert "indexed 3 chunks" in text
    assert "hidden detail" not in text
