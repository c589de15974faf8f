#!/usr/bin/env python3
"""
Tsukimi Speaker Autostart Installer

Run once (with sudo) on a fresh device. It makes tsukimi-setup-and-run start
at every boot, so that:
  1. First boot: provisioning runs, then the device reboots
  2. Every boot after that: the speaker starts

Strategies (pick one, installing one removes the other):
  service-hook  systemd oneshot tsukimi-setup.service (default)
  init-hook     entry in /etc/rc.local
"""

import sys
import argparse
import logging

from tsukimi_setup import constants
from tsukimi_setup.exceptions.environment_resolution_exception import EnvironmentResolutionException
from tsukimi_setup.services.common.autostart import AutostartStrategy, select_strategy
from tsukimi_setup.services.common.config import load_config
from tsukimi_setup.services.common.environment import resolve_environment
from tsukimi_setup.services.common.logging_config import log_service_start, setup_service_logging
from tsukimi_setup.services.common.system import is_privileged

SERVICE_NAME = 'tsukimi-install-autostart'

logger = logging.getLogger(SERVICE_NAME)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=f"Start {constants.APP_DISPLAY_NAME} setup automatically at boot"
    )
    parser.add_argument(
        '--strategy',
        choices=[s.value for s in AutostartStrategy],
        default=AutostartStrategy.SERVICE_HOOK.value,
        help="Boot trigger to install (default: service-hook)"
    )
    return parser.parse_args(argv)


def run_install_autostart(argv=None) -> int:
    args = parse_args(argv)
    setup_service_logging(SERVICE_NAME)
    log_service_start(logger, f"{constants.APP_DISPLAY_NAME} Autostart Installer")

    if not is_privileged():
        logger.error("This command must be run as root (use sudo)")
        return 1

    try:
        ctx = resolve_environment(load_config())
    except EnvironmentResolutionException as e:
        logger.error(e.message)
        return 1

    logger.info(f"Detected user: {ctx.account}")

    strategy = AutostartStrategy(args.strategy)
    if not select_strategy(strategy, ctx):
        logger.error("Failed to install autostart")
        return 1

    logger.info("=" * 60)
    logger.info("Autostart configured!")
    logger.info("=" * 60)
    logger.info("From the next boot:")
    logger.info("  1. First boot: setup runs, then the device reboots")
    logger.info(f"  2. After that: {constants.APP_DISPLAY_NAME} starts automatically")
    if strategy is AutostartStrategy.SERVICE_HOOK:
        logger.info("Check the service with:")
        logger.info(f"  sudo systemctl status {constants.SETUP_UNIT_NAME}")
        logger.info("To run it now:")
        logger.info(f"  sudo systemctl start {constants.SETUP_UNIT_NAME}")
    else:
        logger.info("To run it now:")
        logger.info(f"  sudo SUDO_USER={ctx.account} {sys.executable} -m {constants.ORCHESTRATOR_MODULE}")
    return 0


def main():
    try:
        sys.exit(run_install_autostart())
    except Exception as e:
        logger.exception(f"Unhandled exception installing autostart: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
