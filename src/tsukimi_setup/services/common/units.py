"""
Tsukimi Speaker Setup - systemd Unit Generation

Renders and installs the units that keep the speaker and its audio server
running. A unit is installed into exactly one scope:

- system: /etc/systemd/system, needs root, runs without any login.
  The speaker must never run as root there, so system-scope units for it
  always carry User=<account>.
- user: ~/.config/systemd/user, runs under the account's own manager
  (kept alive by lingering).

Installing is always write, daemon-reload, enable. Writing over an existing
unit of the same name is the normal re-run path, not an error.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from tsukimi_setup import constants

from .config import SCOPE_SYSTEM, SCOPE_USER, DEFAULT_RUST_LOG
from .environment import EnvironmentContext
from .file_utils import atomic_write_text, chown_to_account
from .paths import SYSTEM_UNIT_DIR
from .system import (
    enable_linger,
    is_privileged,
    privileged,
    run_command,
    systemctl,
)

logger = logging.getLogger(__name__)

ROLE_APPLICATION = 'application'
ROLE_AUDIO_SERVER = 'audio-server'

# Audio restarts are cheap, the speaker takes longer to come back up
APP_RESTART_SEC = 10
AUDIO_RESTART_SEC = 5

PULSEAUDIO_EXEC = '/usr/bin/pulseaudio --daemonize=no --log-target=journal'

SYSTEM_WANTED_BY = 'multi-user.target'
USER_WANTED_BY = 'default.target'


@dataclass
class ServiceDefinition:
    name: str
    description: str
    exec_start: str
    wanted_by: str
    service_type: str = 'simple'
    after: List[str] = field(default_factory=list)
    wants: List[str] = field(default_factory=list)
    working_directory: Optional[Path] = None
    user: Optional[str] = None
    restart: Optional[str] = 'always'
    restart_sec: Optional[int] = None
    remain_after_exit: bool = False
    environment: Dict[str, str] = field(default_factory=dict)
    standard_output: Optional[str] = None
    standard_error: Optional[str] = None

    def render(self) -> str:
        unit = [f"Description={self.description}"]
        if self.after:
            unit.append(f"After={' '.join(self.after)}")
        if self.wants:
            unit.append(f"Wants={' '.join(self.wants)}")

        service = [f"Type={self.service_type}"]
        if self.remain_after_exit:
            service.append("RemainAfterExit=yes")
        if self.user:
            service.append(f"User={self.user}")
        if self.working_directory is not None:
            service.append(f"WorkingDirectory={self.working_directory}")
        service.append(f"ExecStart={self.exec_start}")
        if self.restart:
            service.append(f"Restart={self.restart}")
        if self.restart_sec is not None:
            service.append(f"RestartSec={self.restart_sec}")
        for key, value in self.environment.items():
            service.append(f'Environment="{key}={value}"')
        if self.standard_output:
            service.append(f"StandardOutput={self.standard_output}")
        if self.standard_error:
            service.append(f"StandardError={self.standard_error}")

        sections = [
            ("Unit", unit),
            ("Service", service),
            ("Install", [f"WantedBy={self.wanted_by}"]),
        ]
        return "\n\n".join(
            "\n".join([f"[{title}]"] + lines) for title, lines in sections
        ) + "\n"


def application_definition(ctx: EnvironmentContext, scope: str,
                           rust_log: str = DEFAULT_RUST_LOG,
                           log_file: Optional[Path] = None) -> ServiceDefinition:
    """
    Unit for the resident speaker application.

    Working directory and ExecStart come from the resolved project directory.
    Output is appended to the same log file the setup run writes to:
    log_file when the run fell back to another location, else ctx.log_file.
    """
    output = f"append:{log_file or ctx.log_file}"
    definition = ServiceDefinition(
        name=constants.APP_UNIT_NAME,
        description=f"{constants.APP_DISPLAY_NAME} Service",
        exec_start=str(ctx.binary_path),
        working_directory=ctx.project_dir,
        restart='always',
        restart_sec=APP_RESTART_SEC,
        environment={'RUST_LOG': rust_log},
        standard_output=output,
        standard_error=output,
        wanted_by=SYSTEM_WANTED_BY,
    )

    if scope == SCOPE_SYSTEM:
        # pulseaudio.service lives in the user manager; this ordering only
        # takes effect once the speaker moves to user scope (fix-autostart)
        definition.after = ['network.target', 'bluetooth.target', constants.AUDIO_UNIT_NAME]
        definition.wants = ['bluetooth.target']
        definition.user = ctx.account
    elif scope == SCOPE_USER:
        definition.after = [constants.AUDIO_UNIT_NAME, 'bluetooth.target', 'network-online.target']
        definition.wants = [constants.AUDIO_UNIT_NAME, 'bluetooth.target', 'network-online.target']
        definition.wanted_by = USER_WANTED_BY
    else:
        raise ValueError(f"Unknown systemd scope: {scope}")

    return definition


def audio_server_definition(ctx: EnvironmentContext, scope: str = SCOPE_USER) -> ServiceDefinition:
    """Unit for the PulseAudio sound server."""
    definition = ServiceDefinition(
        name=constants.AUDIO_UNIT_NAME,
        description='PulseAudio Sound System',
        exec_start=PULSEAUDIO_EXEC,
        service_type='notify',
        after=['sound.target'],
        restart='always',
        restart_sec=AUDIO_RESTART_SEC,
        wanted_by=USER_WANTED_BY,
    )
    if scope == SCOPE_SYSTEM:
        definition.user = ctx.account
        definition.wanted_by = SYSTEM_WANTED_BY
    elif scope != SCOPE_USER:
        raise ValueError(f"Unknown systemd scope: {scope}")
    return definition


def build_definition(role: str, scope: str, ctx: EnvironmentContext,
                     rust_log: str = DEFAULT_RUST_LOG,
                     log_file: Optional[Path] = None) -> ServiceDefinition:
    if role == ROLE_APPLICATION:
        return application_definition(ctx, scope, rust_log, log_file)
    if role == ROLE_AUDIO_SERVER:
        return audio_server_definition(ctx, scope)
    raise ValueError(f"Unknown service role: {role}")


def unit_dir(scope: str, ctx: EnvironmentContext) -> Path:
    if scope == SCOPE_SYSTEM:
        return SYSTEM_UNIT_DIR
    if scope == SCOPE_USER:
        return ctx.user_unit_dir
    raise ValueError(f"Unknown systemd scope: {scope}")


def unit_path(name: str, scope: str, ctx: EnvironmentContext) -> Path:
    return unit_dir(scope, ctx) / name


def write_unit_file(path: Path, text: str, scope: str, ctx: EnvironmentContext) -> bool:
    """
    Write unit text to path.

    System units written without root go through `sudo tee`. User units
    written by root are handed back to the account afterwards.
    """
    if scope == SCOPE_SYSTEM and not is_privileged():
        success, _, stderr = run_command(
            privileged(['tee', str(path)]),
            input_text=text,
        )
        if not success:
            logger.error(f"Failed to write {path}: {stderr}")
        return success

    try:
        atomic_write_text(path, text, mode=0o644)
    except OSError as e:
        logger.error(f"Failed to write {path}: {e}")
        return False

    if scope == SCOPE_USER:
        for owned in (path, path.parent, path.parent.parent, path.parent.parent.parent):
            chown_to_account(owned, ctx.account)
    return True


def reload_units(scope: str, ctx: EnvironmentContext) -> bool:
    return systemctl(scope, 'daemon-reload', account=ctx.account, home=ctx.home)


def install_unit(definition: ServiceDefinition, scope: str, ctx: EnvironmentContext,
                 start: bool = False) -> bool:
    """
    Write, reload and enable a unit in the given scope.

    Args:
        definition: Unit to install
        scope: SCOPE_SYSTEM or SCOPE_USER
        ctx: Resolved environment
        start: Also start the unit now

    Returns:
        True if every step succeeded.
    """
    path = unit_path(definition.name, scope, ctx)
    logger.info(f"Installing {definition.name} ({scope} scope) at {path}")

    if not write_unit_file(path, definition.render(), scope, ctx):
        return False

    if scope == SCOPE_USER and not enable_linger(ctx.account):
        logger.error(f"Failed to enable lingering for {ctx.account}")
        return False

    if not reload_units(scope, ctx):
        logger.error(f"Failed to reload {scope} units")
        return False

    if not systemctl(scope, 'enable', definition.name, account=ctx.account, home=ctx.home):
        logger.error(f"Failed to enable {definition.name}")
        return False

    if start and not systemctl(scope, 'start', definition.name, account=ctx.account, home=ctx.home):
        logger.error(f"Failed to start {definition.name}")
        return False

    logger.info(f"Installed {definition.name}")
    return True


def remove_unit(name: str, scope: str, ctx: EnvironmentContext) -> bool:
    """
    Stop, disable and delete a unit if it is installed.

    Stop/disable failures are expected for units that were never enabled
    and are only logged. Failing to delete the file is an error.
    """
    path = unit_path(name, scope, ctx)
    if not path.exists():
        return True

    logger.info(f"Removing {name} ({scope} scope)")
    systemctl(scope, 'stop', name, account=ctx.account, home=ctx.home)
    systemctl(scope, 'disable', name, account=ctx.account, home=ctx.home)

    if scope == SCOPE_SYSTEM and not is_privileged():
        success, _, stderr = run_command(privileged(['rm', '-f', str(path)]))
        if not success:
            logger.error(f"Failed to remove {path}: {stderr}")
            return False
    else:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Failed to remove {path}: {e}")
            return False

    return reload_units(scope, ctx)
