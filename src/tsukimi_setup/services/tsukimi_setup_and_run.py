#!/usr/bin/env python3
"""
Tsukimi Speaker Setup and Run

This is what every boot trigger starts (tsukimi-setup.service or
/etc/rc.local). It decides between two things:

1. Not provisioned yet (no ~/.tsukimi_setup_complete):
   run the first-time provisioning steps - packages, Rust, build,
   Bluetooth, PulseAudio and speaker units - write the marker and reboot.
   Some of those steps (audio overlay, toolchain) only take effect after
   the reboot.
2. Provisioned: start the speaker binary in the foreground with its output
   in the setup log.

There is no phase variable that survives the reboot - the marker file on
disk is the whole state. Power loss before the marker is written means
provisioning starts over; after it, the speaker starts.

Only one instance runs at a time; a second invocation exits immediately.
"""

import sys
import logging

from tsukimi_setup import constants
from tsukimi_setup.exceptions.environment_resolution_exception import EnvironmentResolutionException
from tsukimi_setup.exceptions.lock_file_unavailable_exception import LockFileUnavailableException
from tsukimi_setup.exceptions.log_sink_unavailable_exception import LogSinkUnavailableException
from tsukimi_setup.services.common.config import SetupConfig, load_config
from tsukimi_setup.services.common.environment import (
    EnvironmentContext,
    report_project_dir,
    resolve_environment,
)
from tsukimi_setup.services.common.lock import SingleInstanceLock
from tsukimi_setup.services.common.logging_config import (
    log_service_start,
    open_log_sink,
    setup_service_logging,
)
from tsukimi_setup.services.common.phases import PhaseExecutor
from tsukimi_setup.services.common.state import StateTracker
from tsukimi_setup.services.common.system import as_account, notify_status, run_logged

SERVICE_NAME = 'tsukimi-setup'

logger = logging.getLogger(SERVICE_NAME)


def launch_application(ctx: EnvironmentContext, config: SetupConfig) -> int:
    """
    Run the speaker in the foreground, mirroring its output into the log.

    Returns:
        0 once the speaker has been started and has exited, 1 if it could
        not be started at all.
    """
    if not ctx.project_dir.is_dir():
        logger.error(f"Project directory not found: {ctx.project_dir}")
        return 1

    if not ctx.binary_path.exists():
        logger.error(f"Application binary not found: {ctx.binary_path}")
        logger.error(f"Delete {ctx.setup_complete_flag} and run setup again to rebuild.")
        return 1

    logger.info(f"Starting {constants.APP_DISPLAY_NAME}...")
    notify_status(f"Running {constants.APP_DISPLAY_NAME}")

    app_env = {'RUST_LOG': config.rust_log}
    cmd = as_account([str(ctx.binary_path)], ctx.account, ctx.home, env=app_env)
    status = run_logged(cmd, cwd=ctx.project_dir, env=app_env)
    logger.info(f"{constants.APP_DISPLAY_NAME} exited with status {status}")
    return 0


def run_setup_and_run(config: SetupConfig = None) -> int:
    """
    Resolve the environment, open the log and run whichever phase is due.

    Returns:
        Process exit status.
    """
    setup_service_logging(SERVICE_NAME)
    if config is None:
        config = load_config()

    try:
        ctx = resolve_environment(config)
    except EnvironmentResolutionException as e:
        logger.error(e.message)
        return 1

    try:
        log_file = open_log_sink(ctx.log_file, owner=ctx.account)
    except LogSinkUnavailableException as e:
        logger.error(e.message)
        return 1
    setup_service_logging(SERVICE_NAME, log_file)

    log_service_start(logger, f"{constants.APP_DISPLAY_NAME} Setup")
    logger.info(f"User: {ctx.account}")
    logger.info(f"Home: {ctx.home}")
    logger.info(f"Project: {ctx.project_dir}")
    logger.info(f"Log: {log_file}")
    report_project_dir(ctx)

    lock = SingleInstanceLock(ctx.lock_file, owner=ctx.account)
    try:
        acquired = lock.acquire()
    except LockFileUnavailableException as e:
        logger.error(e.message)
        return 1
    if not acquired:
        holder = lock.holder_pid() or 'unknown'
        logger.info(f"Another setup run is already active (pid {holder}), exiting")
        return 0

    try:
        tracker = StateTracker(ctx.setup_complete_flag, owner=ctx.account)
        if tracker.is_complete():
            logger.info("Setup already completed. Starting the application...")
            return launch_application(ctx, config)

        logger.info("Starting first-time setup...")
        executor = PhaseExecutor(ctx, config, tracker, log_file=log_file)
        return 0 if executor.run() else 1
    finally:
        lock.release()


def main():
    """Entry point for the service."""
    try:
        sys.exit(run_setup_and_run())
    except Exception as e:
        logger.exception(f"Unhandled exception in setup service: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
