#!/usr/bin/env python3
"""
Tsukimi Speaker Autostart Fix

Moves the speaker from the system-wide systemd scope into the user's own
scope. As a system service the speaker can't reach the user's PulseAudio
session; as a user service it starts after pulseaudio.service in the same
manager.

Run as the speaker user (not root) on an already provisioned device:
1. Stop, disable and delete the system tsukimi-speaker and tsukimi-setup units
2. Write ~/.config/systemd/user/tsukimi-speaker.service
3. Reload the user manager and enable the unit
4. Enable lingering so it keeps running without a login
5. Start it
"""

import sys
import logging

from tsukimi_setup import constants
from tsukimi_setup.exceptions.environment_resolution_exception import EnvironmentResolutionException
from tsukimi_setup.services.common.autostart import init_hook_installed
from tsukimi_setup.services.common.config import SCOPE_SYSTEM, SCOPE_USER, load_config
from tsukimi_setup.services.common.environment import (
    PRIVILEGED_ACCOUNT,
    current_account,
    report_project_dir,
    resolve_environment,
)
from tsukimi_setup.services.common.logging_config import log_service_start, setup_service_logging
from tsukimi_setup.services.common.units import application_definition, install_unit, remove_unit

SERVICE_NAME = 'tsukimi-fix-autostart'

logger = logging.getLogger(SERVICE_NAME)


def run_fix_autostart() -> int:
    setup_service_logging(SERVICE_NAME)
    log_service_start(logger, f"{constants.APP_DISPLAY_NAME} Autostart Fix")

    if current_account() == PRIVILEGED_ACCOUNT:
        logger.error("Run this as the speaker user, not root")
        return 1

    config = load_config()
    try:
        ctx = resolve_environment(config)
    except EnvironmentResolutionException as e:
        logger.error(e.message)
        return 1

    logger.info(f"User: {ctx.account}")
    logger.info(f"Project: {ctx.project_dir}")
    report_project_dir(ctx)

    logger.info("Step 1: Removing system services...")
    for unit in (constants.APP_UNIT_NAME, constants.SETUP_UNIT_NAME):
        if not remove_unit(unit, SCOPE_SYSTEM, ctx):
            logger.error(f"Failed to remove system unit {unit}")
            return 1

    logger.info("Step 2: Installing user service...")
    definition = application_definition(ctx, SCOPE_USER, config.rust_log)
    if not install_unit(definition, SCOPE_USER, ctx, start=True):
        logger.error("Failed to install user service")
        return 1

    if init_hook_installed():
        logger.warning("/etc/rc.local still starts setup at boot; the speaker may start twice")
        logger.warning("Remove the tsukimi_setup_and_run line from /etc/rc.local")

    logger.info("=" * 60)
    logger.info("Fix complete!")
    logger.info("=" * 60)
    logger.info("Check the service with:")
    logger.info(f"  systemctl --user status {constants.APP_UNIT_NAME}")
    logger.info("Follow its log with:")
    logger.info(f"  tail -f {ctx.log_file}")
    logger.info("Stop autostart with:")
    logger.info(f"  systemctl --user disable {constants.APP_UNIT_NAME}")
    return 0


def main():
    try:
        sys.exit(run_fix_autostart())
    except Exception as e:
        logger.exception(f"Unhandled exception fixing autostart: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
