import sys
from pathlib import Path

from loguru import logger

_SINK_IDS: list[int] = []
_VALID_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}

_DEFAULT_FMT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "{level:<7} | "
    "{name}:{line} | "
    "{message}"
)


def _resolve_level(level: str | None) -> str:
    val = (level or "INFO").strip().upper()
    val = {"WARN": "WARNING"}.get(val, val)
    return val if val in _VALID_LEVELS else "INFO"


def configure_logging(
    level: str | None = None,
    *,
    log_file: str | Path | None = None,
    rotation: str = "5 MB",
    retention: int | str = 10,
) -> None:
    """Install the stderr sink and, when `log_file` is given, a rotating file sink.

    Safe to call more than once; previously installed sinks are replaced.
    """
    # loguru ships with a default stderr handler (id 0)
    for sink_id in [0, *_SINK_IDS]:
        try:
            logger.remove(sink_id)
        except ValueError:
            pass
    _SINK_IDS.clear()

    resolved = _resolve_level(level)
    _SINK_IDS.append(logger.add(sys.stderr, level=resolved, format=_DEFAULT_FMT))

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        _SINK_IDS.append(
            logger.add(
                str(path),
                level=resolved,
                format=_DEFAULT_FMT,
                rotation=rotation,
                retention=retention,
                encoding="utf-8",
            )
        )
