import logging
from pathlib import Path
from typing import List, Optional

import pytest

from tsukimi_setup.services import tsukimi_setup_and_run
from tsukimi_setup.services.common import autostart, phases, system, toolchain, units
from tsukimi_setup.services.common.config import SetupConfig
from tsukimi_setup.services.common.environment import EnvironmentContext


class CommandRecorder:
    """Stands in for apt/systemctl/cargo: records commands, fails on request."""

    def __init__(self):
        self.commands: List[List[str]] = []
        self.cwds: List[Optional[Path]] = []
        self.fail_on: List[str] = []

    def _status(self, cmd) -> int:
        joined = " ".join(cmd)
        return 1 if any(fragment in joined for fragment in self.fail_on) else 0

    def run_logged(self, cmd, cwd=None, env=None) -> int:
        self.commands.append(list(cmd))
        self.cwds.append(cwd)
        return self._status(cmd)

    def run_command(self, cmd, cwd=None, timeout=10, input_text=None):
        self.commands.append(list(cmd))
        self.cwds.append(cwd)
        return self._status(cmd) == 0, "", ""

    def joined(self) -> List[str]:
        return [" ".join(cmd) for cmd in self.commands]

    def ran(self, fragment: str) -> bool:
        return any(fragment in line for line in self.joined())

    def index_of(self, fragment: str) -> int:
        for index, line in enumerate(self.joined()):
            if fragment in line:
                return index
        raise AssertionError(f"{fragment!r} was never run: {self.joined()}")


@pytest.fixture
def home_root(tmp_path: Path) -> Path:
    root = tmp_path / "home"
    root.mkdir()
    return root


@pytest.fixture
def config(home_root: Path) -> SetupConfig:
    return SetupConfig(home_root=home_root, reboot_delay_seconds=0)


@pytest.fixture
def ctx(home_root: Path) -> EnvironmentContext:
    home = home_root / "pi"
    home.mkdir()
    return EnvironmentContext(account="pi", home=home, project_dir=home / "tsukimi-speaker-rust")


@pytest.fixture
def system_unit_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    unit_dir = tmp_path / "etc" / "systemd" / "system"
    monkeypatch.setattr(units, "SYSTEM_UNIT_DIR", unit_dir)
    return unit_dir


@pytest.fixture
def rc_local(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "etc" / "rc.local"
    monkeypatch.setattr(autostart, "RC_LOCAL_FILE", path)
    return path


@pytest.fixture
def recorder(monkeypatch: pytest.MonkeyPatch, system_unit_dir: Path, rc_local: Path) -> CommandRecorder:
    rec = CommandRecorder()
    monkeypatch.setattr(system, "run_logged", rec.run_logged)
    monkeypatch.setattr(system, "run_command", rec.run_command)
    monkeypatch.setattr(units, "run_command", rec.run_command)
    monkeypatch.setattr(units, "is_privileged", lambda: True)
    monkeypatch.setattr(phases, "run_logged", rec.run_logged)
    monkeypatch.setattr(toolchain, "run_logged", rec.run_logged)
    monkeypatch.setattr(toolchain, "run_command", rec.run_command)
    monkeypatch.setattr(tsukimi_setup_and_run, "run_logged", rec.run_logged)
    monkeypatch.setattr(system.time, "sleep", lambda _seconds: None)
    return rec


@pytest.fixture(autouse=True)
def reset_logging():
    yield
    # Close file handlers opened by setup_service_logging
    logging.basicConfig(handlers=[logging.NullHandler()], force=True)
