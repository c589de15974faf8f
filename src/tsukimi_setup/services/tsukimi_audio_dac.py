#!/usr/bin/env python3
"""
Tsukimi Speaker I2S DAC Setup

Enables the MAX98357A I2S amplifier on a Raspberry Pi:
1. Back up /boot/config.txt to /boot/config.txt.bak
2. Disable the onboard audio (dtparam=audio=on)
3. Enable I2S and the hifiberry-dac overlay
4. Make the DAC the default ALSA card in /etc/asound.conf

The overlay only takes effect after a reboot. Run as root.
"""

import sys
import shutil
import logging

from tsukimi_setup import constants
from tsukimi_setup.services.common.file_utils import atomic_write_text
from tsukimi_setup.services.common.logging_config import log_service_start, setup_service_logging
from tsukimi_setup.services.common.paths import (
    ASOUND_CONF_FILE,
    BOOT_CONFIG_BACKUP_FILE,
    BOOT_CONFIG_FILE,
)
from tsukimi_setup.services.common.system import is_privileged

SERVICE_NAME = 'tsukimi-audio-dac'

logger = logging.getLogger(SERVICE_NAME)

ONBOARD_AUDIO_LINE = 'dtparam=audio=on'
I2S_LINE = 'dtparam=i2s=on'
DAC_OVERLAY_LINE = 'dtoverlay=hifiberry-dac'

# Card name the hifiberry-dac overlay registers
DAC_CARD_NAME = 'sndrpihifiberry'


def apply_dac_overlay(text: str) -> str:
    """Return config.txt content with onboard audio off and the DAC overlay on."""
    lines = []
    for line in text.splitlines():
        if line.strip() == ONBOARD_AUDIO_LINE:
            lines.append(f"#{ONBOARD_AUDIO_LINE}")
        else:
            lines.append(line)

    for required in (I2S_LINE, DAC_OVERLAY_LINE):
        if required not in (line.strip() for line in lines):
            lines.append(required)

    return "\n".join(lines) + "\n"


def render_asound_conf(card: str = DAC_CARD_NAME) -> str:
    return (
        "pcm.!default {\n"
        "    type hw\n"
        f"    card {card}\n"
        "}\n"
        "ctl.!default {\n"
        "    type hw\n"
        f"    card {card}\n"
        "}\n"
    )


def configure_boot_config() -> bool:
    if not BOOT_CONFIG_FILE.exists():
        logger.error(f"{BOOT_CONFIG_FILE} not found - is this a Raspberry Pi?")
        return False

    try:
        shutil.copy2(BOOT_CONFIG_FILE, BOOT_CONFIG_BACKUP_FILE)
        logger.info(f"Backed up {BOOT_CONFIG_FILE} to {BOOT_CONFIG_BACKUP_FILE}")

        original = BOOT_CONFIG_FILE.read_text(encoding='utf-8')
        updated = apply_dac_overlay(original)
        if updated != original:
            atomic_write_text(BOOT_CONFIG_FILE, updated)
            logger.info(f"Enabled {I2S_LINE} and {DAC_OVERLAY_LINE}")
        else:
            logger.info("DAC overlay already configured")
        return True
    except OSError as e:
        logger.error(f"Failed to update {BOOT_CONFIG_FILE}: {e}")
        return False


def configure_alsa() -> bool:
    try:
        atomic_write_text(ASOUND_CONF_FILE, render_asound_conf(), mode=0o644)
        logger.info(f"Wrote {ASOUND_CONF_FILE} with {DAC_CARD_NAME} as the default card")
        return True
    except OSError as e:
        logger.error(f"Failed to write {ASOUND_CONF_FILE}: {e}")
        return False


def run_audio_dac_setup() -> int:
    setup_service_logging(SERVICE_NAME)
    log_service_start(logger, f"{constants.APP_DISPLAY_NAME} I2S DAC Setup")

    if not is_privileged():
        logger.error("This command must be run as root (use sudo)")
        return 1

    if not configure_boot_config():
        return 1
    if not configure_alsa():
        return 1

    logger.info("=" * 60)
    logger.info("DAC setup complete. Reboot for the overlay to take effect.")
    logger.info("=" * 60)
    return 0


def main():
    try:
        sys.exit(run_audio_dac_setup())
    except Exception as e:
        logger.exception(f"Unhandled exception in DAC setup: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
