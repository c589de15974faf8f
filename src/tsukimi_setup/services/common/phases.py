"""
Tsukimi Speaker Setup - First-Time Provisioning Steps

The provisioning run is a fixed list of steps executed in order. The first
step that fails ends the run: nothing is retried and the setup marker stays
unset, so the next boot starts again from step 1. Steps that already
happened (packages installed, Rust present) are cheap no-ops the second
time round.

Steps:
 1. apt-get update && apt-get upgrade
 2. Install system packages (audio, Bluetooth, build prerequisites)
 3. Install Rust if `rustc --version` fails
 4. Check the project directory is staged
 5. cargo build --release
 6. Enable and start bluetooth
 7. Install the PulseAudio user unit
 8. Install the speaker unit and reload systemd
 9. Write the setup marker
10. Reboot
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from tsukimi_setup import constants

from .config import SCOPE_SYSTEM, SCOPE_USER, SetupConfig
from .environment import EnvironmentContext
from .state import StateTracker
from .system import (
    as_account,
    notify_status,
    privileged,
    reboot_host,
    run_logged,
    systemctl,
)
from .toolchain import ensure_toolchain, toolchain_binary
from .units import (
    application_definition,
    audio_server_definition,
    install_unit,
    reload_units,
    remove_unit,
)

logger = logging.getLogger(__name__)

APT_ENV = ['env', 'DEBIAN_FRONTEND=noninteractive']

# Build prerequisites include protoc and the OpenSSL/BlueZ headers the speaker links against
SYSTEM_PACKAGES = [
    'git',
    'curl',
    'build-essential',
    'libdbus-1-dev',
    'pkg-config',
    'libssl-dev',
    'protobuf-compiler',
    'libbluetooth-dev',
    'libgstreamer1.0-dev',
    'libgstreamer-plugins-base1.0-dev',
    'libglib2.0-dev',
    'libasound2-dev',
    'gstreamer1.0-plugins-base',
    'gstreamer1.0-plugins-good',
    'gstreamer1.0-plugins-bad',
    'gstreamer1.0-plugins-ugly',
    'gstreamer1.0-alsa',
    'gstreamer1.0-pulseaudio',
    'pulseaudio',
    'pulseaudio-module-bluetooth',
    'bluez',
    'bluez-tools',
    'bluetooth',
    'pi-bluetooth',
]


@dataclass(frozen=True)
class Phase:
    name: str
    action: Callable[[], bool]


class PhaseExecutor:
    """Runs the provisioning steps for one resolved environment."""

    def __init__(self, ctx: EnvironmentContext, config: SetupConfig, tracker: StateTracker,
                 log_file: Optional[Path] = None):
        self.ctx = ctx
        self.config = config
        self.tracker = tracker
        # Log the run actually writes to; the speaker unit appends to it too
        self.log_file = log_file

    def phases(self) -> List[Phase]:
        return [
            Phase("Update system packages", self.update_system),
            Phase("Install required packages", self.install_packages),
            Phase("Install Rust toolchain", self.install_toolchain),
            Phase("Check project directory", self.check_project_dir),
            Phase("Build application", self.build_application),
            Phase("Configure Bluetooth", self.configure_bluetooth),
            Phase("Configure PulseAudio", self.configure_audio),
            Phase("Configure autostart service", self.configure_app_service),
            Phase("Create setup complete flag", self.mark_complete),
            Phase("Reboot", self.reboot),
        ]

    def run(self) -> bool:
        """
        Execute every phase in order, stopping at the first failure.

        Returns:
            True if every phase succeeded (the last one requests a reboot).
        """
        phases = self.phases()
        for number, phase in enumerate(phases, start=1):
            label = f"Step {number}/{len(phases)}: {phase.name}"
            logger.info(label)
            notify_status(label)

            if not phase.action():
                logger.error("=" * 60)
                logger.error(f"{label} FAILED - setup will start over on the next run")
                logger.error("=" * 60)
                notify_status(f"FAILED: {label}")
                return False

        return True

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def update_system(self) -> bool:
        if run_logged(privileged(APT_ENV + ['apt-get', 'update'])) != 0:
            return False
        return run_logged(privileged(APT_ENV + ['apt-get', 'upgrade', '-y'])) == 0

    def install_packages(self) -> bool:
        logger.info("Installing required packages...")
        return run_logged(privileged(APT_ENV + ['apt-get', 'install', '-y'] + SYSTEM_PACKAGES)) == 0

    def install_toolchain(self) -> bool:
        return ensure_toolchain(self.ctx)

    def check_project_dir(self) -> bool:
        if not self.ctx.project_dir.is_dir():
            logger.error(f"Project directory not found: {self.ctx.project_dir}")
            logger.error(f"Copy the project files to {self.ctx.project_dir} and run setup again.")
            return False
        logger.info(f"Project directory: {self.ctx.project_dir}")
        return True

    def build_application(self) -> bool:
        cargo = toolchain_binary(self.ctx, 'cargo')
        cmd = as_account([cargo, 'build', f'--{constants.BUILD_PROFILE}'], self.ctx.account, self.ctx.home)
        if run_logged(cmd, cwd=self.ctx.project_dir) != 0:
            return False
        logger.info("Build complete")
        return True

    def configure_bluetooth(self) -> bool:
        if not systemctl(SCOPE_SYSTEM, 'enable', 'bluetooth'):
            return False
        return systemctl(SCOPE_SYSTEM, 'start', 'bluetooth')

    def configure_audio(self) -> bool:
        return install_unit(audio_server_definition(self.ctx, SCOPE_USER), SCOPE_USER, self.ctx)

    def configure_app_service(self) -> bool:
        scope = self.config.app_unit_scope
        other_scope = SCOPE_USER if scope == SCOPE_SYSTEM else SCOPE_SYSTEM

        # One scope per run for the speaker unit
        if not remove_unit(constants.APP_UNIT_NAME, other_scope, self.ctx):
            return False

        definition = application_definition(self.ctx, scope, self.config.rust_log, self.log_file)
        if not install_unit(definition, scope, self.ctx):
            return False
        return reload_units(scope, self.ctx)

    def mark_complete(self) -> bool:
        return self.tracker.mark_complete(
            note=f"Setup completed for {self.ctx.account} ({self.ctx.project_dir})"
        )

    def reboot(self) -> bool:
        logger.info("=" * 60)
        logger.info("Setup complete!")
        logger.info(f"The system will reboot; {constants.APP_DISPLAY_NAME} starts automatically afterwards")
        logger.info("=" * 60)
        return reboot_host(self.config.reboot_delay_seconds)
