APP_DISPLAY_NAME = "Tsukimi Speaker"

# Resident application built from the staged project
BINARY_NAME = "tsukimi-speaker"
BUILD_PROFILE = "release"

# systemd unit names
APP_UNIT_NAME = "tsukimi-speaker.service"
AUDIO_UNIT_NAME = "pulseaudio.service"
SETUP_UNIT_NAME = "tsukimi-setup.service"

# Module run by every autostart trigger
ORCHESTRATOR_MODULE = "tsukimi_setup.services.tsukimi_setup_and_run"
