import subprocess
from types import SimpleNamespace
from typing import Callable, Dict, List, Optional

import pytest

from archimage.lib import env


class FakeRunner:
    """Stands in for subprocess.run and records every argv."""

    def __init__(self) -> None:
        self.calls: List[List[str]] = []
        self.kwargs: List[dict] = []
        self.stdout: Dict[str, str] = {}
        self.fail: Dict[str, int] = {}
        self.hooks: Dict[str, Callable[[List[str]], None]] = {}

    def __call__(self, argv, **kwargs):
        argv = list(argv)
        self.calls.append(argv)
        self.kwargs.append(kwargs)
        key = self._key(argv)
        if key in self.hooks:
            self.hooks[key](argv)
        rc = self.fail.get(key, 0)
        return SimpleNamespace(returncode=rc, stdout=self.stdout.get(key, ""), stderr="boom" if rc else "")

    @staticmethod
    def _key(argv: List[str]) -> str:
        if argv[0] == "arch-chroot":
            return argv[2]
        return argv[0]

    def commands(self, name: str) -> List[List[str]]:
        return [c for c in self.calls if self._key(c) == name]

    def index(self, argv: List[str]) -> Optional[int]:
        try:
            return self.calls.index(argv)
        except ValueError:
            return None


@pytest.fixture
def fake_run(monkeypatch):
    runner = FakeRunner()
    runner.stdout["losetup"] = "/dev/loop7\n"
    monkeypatch.setattr(subprocess, "run", runner)
    return runner


@pytest.fixture
def sysfs(tmp_path, monkeypatch):
    root = tmp_path / "sys-class-block"
    root.mkdir()
    monkeypatch.setattr(env, "PATHS", env.Paths(sys_class_block=str(root), lock_dir=str(tmp_path / "lock")))
    return root


@pytest.fixture
def scratch_tmp(tmp_path, monkeypatch):
    import tempfile

    d = tmp_path / "tmp"
    d.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(d))
    return d
