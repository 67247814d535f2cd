import json
import os
import time
from pathlib import Path

from loguru import logger

from .errors import RunLockedError


class RunLock:
    """Exclusive lock file guarding a reconciliation run against one index.

    The file is created atomically and removed on release. A stale file left by a
    crashed run has to be removed by hand (its content names the holder).
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._held = False

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            holder = self.path.read_text(encoding="utf-8", errors="replace").strip()
            raise RunLockedError(
                f"Another run holds '{self.path}' ({holder or 'unknown holder'}); remove it if that run is gone"
            ) from None
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump({"pid": os.getpid(), "ts": time.time()}, f)
        self._held = True
        logger.debug("Acquired run lock '{}'", self.path)

    def release(self) -> None:
        if not self._held:
            return
        self.path.unlink(missing_ok=True)
        self._held = False
        logger.debug("Released run lock '{}'", self.path)

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(self, *exc) -> None:
        self.release()
