import logging
from dataclasses import replace
from pathlib import Path

import pytest

from tsukimi_setup.services.common.config import SCOPE_USER, SetupConfig
from tsukimi_setup.services.common.environment import EnvironmentContext
from tsukimi_setup.services.common.phases import PhaseExecutor
from tsukimi_setup.services.common.state import StateTracker


@pytest.fixture
def staged_ctx(ctx: EnvironmentContext) -> EnvironmentContext:
    ctx.project_dir.mkdir()
    return ctx


def _executor(ctx: EnvironmentContext, config: SetupConfig) -> PhaseExecutor:
    return PhaseExecutor(ctx, config, StateTracker(ctx.setup_complete_flag))


def test_phase_names_are_numbered_in_order(staged_ctx: EnvironmentContext, config: SetupConfig) -> None:
    names = [phase.name for phase in _executor(staged_ctx, config).phases()]

    assert len(names) == 10
    assert names[0] == "Update system packages"
    assert names[4] == "Build application"
    assert names[-1] == "Reboot"


def test_first_boot_runs_every_step(
    staged_ctx: EnvironmentContext, config: SetupConfig, recorder, system_unit_dir: Path, caplog
) -> None:
    caplog.set_level(logging.INFO)

    assert _executor(staged_ctx, config).run() is True

    order = [
        recorder.index_of("apt-get update"),
        recorder.index_of("apt-get upgrade -y"),
        recorder.index_of("apt-get install -y git"),
        recorder.index_of("rustc --version"),
        recorder.index_of("build --release"),
        recorder.index_of("systemctl enable bluetooth"),
        recorder.index_of("systemctl start bluetooth"),
        recorder.index_of("systemctl --user enable pulseaudio.service"),
        recorder.index_of("systemctl enable tsukimi-speaker.service"),
        recorder.index_of("reboot"),
    ]
    assert order == sorted(order)
    install = recorder.commands[recorder.index_of("apt-get install")]
    for package in ("protobuf-compiler", "libssl-dev", "libbluetooth-dev"):
        assert package in install
    assert recorder.cwds[recorder.index_of("build --release")] == staged_ctx.project_dir

    assert staged_ctx.setup_complete_flag.read_text(encoding="utf-8").strip()
    assert (system_unit_dir / "tsukimi-speaker.service").exists()
    assert (staged_ctx.user_unit_dir / "pulseaudio.service").exists()
    assert "Step 10/10: Reboot" in caplog.text


def test_installed_toolchain_is_not_reinstalled(
    staged_ctx: EnvironmentContext, config: SetupConfig, recorder
) -> None:
    _executor(staged_ctx, config).run()

    assert not recorder.ran("rustup-init")


def test_failure_stops_run_without_marker(
    staged_ctx: EnvironmentContext, config: SetupConfig, recorder, caplog
) -> None:
    recorder.fail_on.append("apt-get install")
    caplog.set_level(logging.INFO)

    assert _executor(staged_ctx, config).run() is False

    assert not staged_ctx.setup_complete_flag.exists()
    assert not recorder.ran("cargo")
    assert not recorder.ran("reboot")
    assert "Step 2/10: Install required packages FAILED" in caplog.text


def test_missing_project_dir_stops_before_build(
    ctx: EnvironmentContext, config: SetupConfig, recorder, caplog
) -> None:
    caplog.set_level(logging.INFO)

    assert _executor(ctx, config).run() is False

    assert not recorder.ran("cargo")
    assert not ctx.setup_complete_flag.exists()
    assert f"Project directory not found: {ctx.project_dir}" in caplog.text
    assert f"Copy the project files to {ctx.project_dir}" in caplog.text


def test_build_failure_leaves_no_marker(staged_ctx: EnvironmentContext, config: SetupConfig, recorder) -> None:
    recorder.fail_on.append("build --release")

    assert _executor(staged_ctx, config).run() is False

    assert not staged_ctx.setup_complete_flag.exists()
    assert not recorder.ran("systemctl enable bluetooth")


def test_user_scope_application_unit(
    staged_ctx: EnvironmentContext, config: SetupConfig, recorder, system_unit_dir: Path
) -> None:
    user_config = replace(config, app_unit_scope=SCOPE_USER)

    assert _executor(staged_ctx, user_config).run() is True

    assert (staged_ctx.user_unit_dir / "tsukimi-speaker.service").exists()
    assert not (system_unit_dir / "tsukimi-speaker.service").exists()


def test_switching_scope_removes_previous_unit(
    staged_ctx: EnvironmentContext, config: SetupConfig, recorder, system_unit_dir: Path
) -> None:
    _executor(staged_ctx, config).run()
    staged_ctx.setup_complete_flag.unlink()

    _executor(staged_ctx, replace(config, app_unit_scope=SCOPE_USER)).run()

    assert not (system_unit_dir / "tsukimi-speaker.service").exists()
    assert (staged_ctx.user_unit_dir / "tsukimi-speaker.service").exists()


def test_rerun_after_partial_failure_completes(
    staged_ctx: EnvironmentContext, config: SetupConfig, recorder
) -> None:
    recorder.fail_on.append("systemctl start bluetooth")
    assert _executor(staged_ctx, config).run() is False

    recorder.fail_on.clear()
    assert _executor(staged_ctx, config).run() is True
    assert staged_ctx.setup_complete_flag.exists()


def test_application_unit_appends_to_run_log(
    staged_ctx: EnvironmentContext, config: SetupConfig, recorder, system_unit_dir: Path, tmp_path: Path
) -> None:
    fallback_log = tmp_path / "tmp" / "tsukimi_setup.log"
    executor = PhaseExecutor(staged_ctx, config, StateTracker(staged_ctx.setup_complete_flag), log_file=fallback_log)

    assert executor.run() is True

    unit_text = (system_unit_dir / "tsukimi-speaker.service").read_text(encoding="utf-8")
    assert f"StandardOutput=append:{fallback_log}" in unit_text
    assert str(staged_ctx.log_file) not in unit_text
