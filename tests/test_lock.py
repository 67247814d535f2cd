import json
import os
from pathlib import Path

import pytest

from docsync.errors import RunLockedError
from docsync.lock import RunLock


class TestRunLock:
    def test_second_holder_is_refused(self, tmp_path: Path) -> None:
        path = tmp_path / "run.lock"
        with RunLock(path):
            assert json.loads(path.read_text())["pid"] == os.getpid()
            with pytest.raises(RunLockedError, match="Another run holds"):
                RunLock(path).acquire()
        assert not path.exists()

    def test_released_on_error(self, tmp_path: Path) -> None:
        path = tmp_path / "run.lock"
        with pytest.raises(RuntimeError):
            with RunLock(path):
                raise RuntimeError("boom")
        assert not path.exists()
        with RunLock(path):
            pass

    def test_release_without_acquire_keeps_foreign_lock(self, tmp_path: Path) -> None:
        path = tmp_path / "run.lock"
        path.write_text('{"pid": 1}')
        RunLock(path).release()
        assert path.exists()
