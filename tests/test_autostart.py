import stat
from pathlib import Path

from tsukimi_setup.services.common.autostart import (
    RC_LOCAL_TEMPLATE,
    AutostartStrategy,
    init_hook_installed,
    insert_rc_local_entry,
    install_init_hook,
    remove_init_hook,
    render_rc_local_entry,
    select_strategy,
    service_hook_installed,
    setup_service_definition,
    strip_rc_local_entry,
)
from tsukimi_setup.services.common.environment import EnvironmentContext

PYTHON = "/usr/bin/python3"


def test_entry_carries_account_and_backgrounds(ctx: EnvironmentContext) -> None:
    entry = render_rc_local_entry(ctx, python=PYTHON)

    assert entry.splitlines()[-1] == (
        "SUDO_USER=pi /usr/bin/python3 -m tsukimi_setup.services.tsukimi_setup_and_run &"
    )


def test_entry_inserted_before_last_exit(ctx: EnvironmentContext) -> None:
    text = "#!/bin/sh\nif true; then\n  exit 0\nfi\nexit 0\n"

    updated = insert_rc_local_entry(text, render_rc_local_entry(ctx, python=PYTHON))

    lines = updated.splitlines()
    assert lines[-1] == "exit 0"
    assert "tsukimi_setup_and_run" in lines[-3]
    assert lines[2] == "  exit 0"


def test_entry_appended_when_script_has_no_exit(ctx: EnvironmentContext) -> None:
    updated = insert_rc_local_entry("#!/bin/sh\necho hi", render_rc_local_entry(ctx, python=PYTHON))

    assert updated.startswith("#!/bin/sh\necho hi\n")
    assert updated.endswith("\nexit 0\n")


def test_strip_restores_original_script(ctx: EnvironmentContext) -> None:
    with_entry = insert_rc_local_entry(RC_LOCAL_TEMPLATE, render_rc_local_entry(ctx, python=PYTHON))

    assert strip_rc_local_entry(with_entry) == RC_LOCAL_TEMPLATE


def test_init_hook_creates_executable_rc_local(ctx: EnvironmentContext, rc_local: Path) -> None:
    assert install_init_hook(ctx) is True

    text = rc_local.read_text(encoding="utf-8")
    assert text.startswith("#!/bin/bash\n")
    assert text.rstrip().endswith("exit 0")
    assert "SUDO_USER=pi" in text
    assert stat.S_IMODE(rc_local.stat().st_mode) == 0o755
    assert init_hook_installed() is True


def test_init_hook_install_is_idempotent(ctx: EnvironmentContext, rc_local: Path) -> None:
    install_init_hook(ctx)
    first = rc_local.read_text(encoding="utf-8")

    assert install_init_hook(ctx) is True

    assert rc_local.read_text(encoding="utf-8") == first
    assert first.count("tsukimi_setup_and_run") == 1


def test_init_hook_keeps_existing_rc_local_lines(ctx: EnvironmentContext, rc_local: Path) -> None:
    rc_local.parent.mkdir(parents=True)
    rc_local.write_text("#!/bin/sh -e\n/usr/local/bin/fan-control &\nexit 0\n", encoding="utf-8")

    install_init_hook(ctx)
    assert remove_init_hook() is True

    assert rc_local.read_text(encoding="utf-8") == "#!/bin/sh -e\n/usr/local/bin/fan-control &\nexit 0\n"
    assert init_hook_installed() is False


def test_setup_unit_runs_orchestrator_once_as_root(ctx: EnvironmentContext) -> None:
    lines = setup_service_definition(ctx, python=PYTHON).render().splitlines()

    assert "Type=oneshot" in lines
    assert "RemainAfterExit=yes" in lines
    assert "User=root" in lines
    assert 'Environment="SUDO_USER=pi"' in lines
    assert "ExecStart=/usr/bin/python3 -m tsukimi_setup.services.tsukimi_setup_and_run" in lines
    assert "After=network-online.target" in lines
    assert "WantedBy=multi-user.target" in lines
    assert not any(line.startswith("Restart=") for line in lines)


def test_service_hook_replaces_init_hook(ctx: EnvironmentContext, recorder) -> None:
    install_init_hook(ctx)

    assert select_strategy(AutostartStrategy.SERVICE_HOOK, ctx) is True

    assert service_hook_installed(ctx) is True
    assert init_hook_installed() is False
    assert recorder.ran("systemctl enable tsukimi-setup.service")


def test_init_hook_replaces_service_hook(ctx: EnvironmentContext, recorder) -> None:
    select_strategy(AutostartStrategy.SERVICE_HOOK, ctx)
    recorder.commands.clear()

    assert select_strategy(AutostartStrategy.INIT_HOOK, ctx) is True

    assert init_hook_installed() is True
    assert service_hook_installed(ctx) is False
    assert recorder.ran("systemctl disable tsukimi-setup.service")


def test_reselecting_same_strategy_keeps_single_trigger(ctx: EnvironmentContext, recorder) -> None:
    select_strategy(AutostartStrategy.INIT_HOOK, ctx)
    select_strategy(AutostartStrategy.INIT_HOOK, ctx)

    assert init_hook_installed() is True
    assert service_hook_installed(ctx) is False
