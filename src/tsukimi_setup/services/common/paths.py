"""
Tsukimi Speaker Setup - Shared Path Constants

All file and directory paths used by the setup services are defined here.
Paths under a user's home are stored as names or relative paths and joined
with the resolved home directory at runtime (see environment.py).

Directory structure:
  /home/<account>/
    ├── tsukimi-speaker-rust/          # Staged project (must exist before setup)
    │   └── target/release/tsukimi-speaker
    ├── .config/systemd/user/          # Per-user units (pulseaudio, speaker in user scope)
    ├── .cargo/bin/                    # Rust toolchain installed by rustup
    ├── .tsukimi_setup_complete        # Marker: provisioning finished
    ├── .tsukimi_setup.lock            # Held while the orchestrator runs
    └── tsukimi_setup.log              # Append-only setup/app log

  /etc/
    ├── tsukimi/setup.conf             # Optional overrides (see config.py)
    ├── systemd/system/                # System-wide units
    ├── rc.local                       # Init-hook autostart
    └── asound.conf                    # ALSA defaults for the I2S DAC

  /boot/config.txt                     # Device tree overlays (backup: config.txt.bak)
"""

from pathlib import Path

# Account discovery
HOME_ROOT = Path('/home')

# Project staged by the operator under the account's home
PROJECT_NAME = 'tsukimi-speaker-rust'
TARGET_DIR_NAME = 'target'

# Files kept directly under the account's home
SETUP_COMPLETE_FLAG_NAME = '.tsukimi_setup_complete'
SETUP_LOG_NAME = 'tsukimi_setup.log'
SETUP_LOCK_NAME = '.tsukimi_setup.lock'

# Used when the home directory cannot hold the log or lock
FALLBACK_DIR = Path('/tmp')

# systemd unit directories
SYSTEM_UNIT_DIR = Path('/etc/systemd/system')
USER_UNIT_RELATIVE_DIR = Path('.config') / 'systemd' / 'user'

# Rust toolchain (rustup installs per user)
CARGO_BIN_RELATIVE_DIR = Path('.cargo') / 'bin'

# Per-user runtime directory needed by `systemctl --user`
USER_RUNTIME_ROOT = Path('/run/user')

# Init-hook autostart
RC_LOCAL_FILE = Path('/etc/rc.local')

# Audio DAC configuration
BOOT_CONFIG_FILE = Path('/boot/config.txt')
BOOT_CONFIG_BACKUP_FILE = Path('/boot/config.txt.bak')
ASOUND_CONF_FILE = Path('/etc/asound.conf')

# Configuration overrides
CONFIG_DIR = Path('/etc/tsukimi')
CONFIG_FILE = CONFIG_DIR / 'setup.conf'
