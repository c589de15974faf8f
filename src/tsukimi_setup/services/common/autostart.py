"""
Tsukimi Speaker Setup - Autostart Strategies

Two ways to have the orchestrator run at every boot:

- service-hook: a systemd oneshot (RemainAfterExit) that runs the
  orchestrator as root with SUDO_USER set to the speaker account.
- init-hook: a line in /etc/rc.local that backgrounds the orchestrator.

Exactly one may be active. Having both starts the orchestrator twice per
boot, so installing one always removes the other first.
"""

import os
import sys
import logging
from enum import Enum
from typing import Optional

from tsukimi_setup import constants

from .config import SCOPE_SYSTEM
from .environment import EnvironmentContext, IDENTITY_HINT_ENV
from .file_utils import atomic_write_text
from .paths import RC_LOCAL_FILE
from .units import ServiceDefinition, install_unit, remove_unit, unit_path

logger = logging.getLogger(__name__)

# Text searched for in rc.local to detect our entry
RC_LOCAL_MARKER = 'tsukimi_setup_and_run'
RC_LOCAL_COMMENT = '# Tsukimi Speaker automatic setup and start'

RC_LOCAL_TEMPLATE = """#!/bin/bash
# rc.local
#
# This script is executed at the end of each multiuser runlevel.
# Make sure that the script will "exit 0" on success or any other
# value on error.

exit 0
"""


class AutostartStrategy(Enum):
    SERVICE_HOOK = 'service-hook'
    INIT_HOOK = 'init-hook'


def orchestrator_command(python: Optional[str] = None) -> str:
    return f"{python or sys.executable} -m {constants.ORCHESTRATOR_MODULE}"


# =============================================================================
# Init hook (/etc/rc.local)
# =============================================================================

def render_rc_local_entry(ctx: EnvironmentContext, python: Optional[str] = None) -> str:
    return (
        f"{RC_LOCAL_COMMENT}\n"
        f"{IDENTITY_HINT_ENV}={ctx.account} {orchestrator_command(python)} &\n"
    )


def insert_rc_local_entry(text: str, entry: str) -> str:
    """
    Insert entry before the last `exit 0` line of an rc.local script.

    Appends the entry followed by `exit 0` when the script has none.
    """
    lines = text.splitlines(keepends=True)
    for index in range(len(lines) - 1, -1, -1):
        if lines[index].strip() == 'exit 0':
            return ''.join(lines[:index]) + entry + '\n' + ''.join(lines[index:])

    if text and not text.endswith('\n'):
        text += '\n'
    return text + entry + '\nexit 0\n'


def strip_rc_local_entry(text: str) -> str:
    """Remove our marker line, its comment and the blank line that follows."""
    kept = []
    skip_blank = False
    for line in text.splitlines(keepends=True):
        stripped = line.strip()
        if stripped == RC_LOCAL_COMMENT:
            continue
        if RC_LOCAL_MARKER in line:
            skip_blank = True
            continue
        if skip_blank and not stripped:
            skip_blank = False
            continue
        skip_blank = False
        kept.append(line)
    return ''.join(kept)


def init_hook_installed() -> bool:
    if not RC_LOCAL_FILE.exists():
        return False
    try:
        return RC_LOCAL_MARKER in RC_LOCAL_FILE.read_text(encoding='utf-8')
    except OSError as e:
        logger.warning(f"Could not read {RC_LOCAL_FILE}: {e}")
        return False


def install_init_hook(ctx: EnvironmentContext) -> bool:
    """Add the orchestrator to rc.local, creating the script if needed."""
    try:
        if RC_LOCAL_FILE.exists():
            logger.info(f"{RC_LOCAL_FILE} already exists")
            text = RC_LOCAL_FILE.read_text(encoding='utf-8')
        else:
            logger.info(f"Creating {RC_LOCAL_FILE}...")
            text = RC_LOCAL_TEMPLATE

        if RC_LOCAL_MARKER in text:
            logger.info("Autostart entry already present in rc.local, skipping")
        else:
            text = insert_rc_local_entry(text, render_rc_local_entry(ctx))
            logger.info(f"Added autostart entry to {RC_LOCAL_FILE}")

        atomic_write_text(RC_LOCAL_FILE, text, mode=0o755)
        return True
    except OSError as e:
        logger.error(f"Failed to update {RC_LOCAL_FILE}: {e}")
        return False


def remove_init_hook() -> bool:
    if not init_hook_installed():
        return True

    logger.info(f"Removing autostart entry from {RC_LOCAL_FILE}...")
    try:
        text = RC_LOCAL_FILE.read_text(encoding='utf-8')
        mode = os.stat(RC_LOCAL_FILE).st_mode & 0o777
        atomic_write_text(RC_LOCAL_FILE, strip_rc_local_entry(text), mode=mode)
        return True
    except OSError as e:
        logger.error(f"Failed to update {RC_LOCAL_FILE}: {e}")
        return False


# =============================================================================
# Service hook (systemd oneshot)
# =============================================================================

def setup_service_definition(ctx: EnvironmentContext, python: Optional[str] = None) -> ServiceDefinition:
    return ServiceDefinition(
        name=constants.SETUP_UNIT_NAME,
        description=f"{constants.APP_DISPLAY_NAME} Initial Setup and Auto Start",
        exec_start=orchestrator_command(python),
        service_type='oneshot',
        remain_after_exit=True,
        after=['network-online.target'],
        wants=['network-online.target'],
        user='root',
        restart=None,
        environment={IDENTITY_HINT_ENV: ctx.account},
        standard_output='journal',
        standard_error='journal',
        wanted_by='multi-user.target',
    )


def service_hook_installed(ctx: EnvironmentContext) -> bool:
    return unit_path(constants.SETUP_UNIT_NAME, SCOPE_SYSTEM, ctx).exists()


def install_service_hook(ctx: EnvironmentContext) -> bool:
    return install_unit(setup_service_definition(ctx), SCOPE_SYSTEM, ctx)


def remove_service_hook(ctx: EnvironmentContext) -> bool:
    return remove_unit(constants.SETUP_UNIT_NAME, SCOPE_SYSTEM, ctx)


# =============================================================================
# Selection
# =============================================================================

def select_strategy(strategy: AutostartStrategy, ctx: EnvironmentContext) -> bool:
    """
    Make strategy the only active autostart trigger.

    Returns:
        True if the other trigger is gone and this one is installed.
    """
    logger.info(f"Selecting autostart strategy: {strategy.value}")

    if strategy is AutostartStrategy.SERVICE_HOOK:
        if not remove_init_hook():
            return False
        return install_service_hook(ctx)

    if strategy is AutostartStrategy.INIT_HOOK:
        if not remove_service_hook(ctx):
            return False
        return install_init_hook(ctx)

    raise ValueError(f"Unknown autostart strategy: {strategy}")
