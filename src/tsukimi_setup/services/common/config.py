"""
Tsukimi Speaker Setup - Configuration

Defaults come from paths.py. They can be overridden by an optional
/etc/tsukimi/setup.conf file with `key = value` lines, and each key can be
overridden again by a TSUKIMI_<KEY> environment variable.

Bad values are logged and ignored - a typo in the config file must never
stop a device from provisioning.
"""

import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

from .paths import CONFIG_FILE, HOME_ROOT, PROJECT_NAME

logger = logging.getLogger(__name__)

ENV_PREFIX = 'TSUKIMI_'

SCOPE_SYSTEM = 'system'
SCOPE_USER = 'user'
VALID_SCOPES = (SCOPE_SYSTEM, SCOPE_USER)

DEFAULT_KNOWN_ACCOUNTS = ('pi', 'tsukimi')
DEFAULT_REBOOT_DELAY_SECONDS = 3
DEFAULT_RUST_LOG = 'info'


@dataclass(frozen=True)
class SetupConfig:
    project_name: str = PROJECT_NAME
    home_root: Path = HOME_ROOT
    known_accounts: Tuple[str, ...] = DEFAULT_KNOWN_ACCOUNTS
    app_unit_scope: str = SCOPE_SYSTEM
    reboot_delay_seconds: int = DEFAULT_REBOOT_DELAY_SECONDS
    rust_log: str = DEFAULT_RUST_LOG


def read_config_file(config_file: Path = CONFIG_FILE) -> Dict[str, str]:
    """
    Parse a `key = value` config file.

    Blank lines and lines starting with '#' are skipped. A missing or
    unreadable file yields an empty dict.
    """
    values: Dict[str, str] = {}
    if not config_file.exists():
        return values

    try:
        text = config_file.read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Error reading config file {config_file}: {e}")
        return values

    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        if '=' not in line:
            logger.warning(f"Ignoring malformed config line: {line}")
            continue
        key, value = line.split('=', 1)
        values[key.strip().lower()] = value.strip()
    return values


def load_config(
    config_file: Path = CONFIG_FILE,
    environ: Optional[Mapping[str, str]] = None
) -> SetupConfig:
    """
    Build the effective SetupConfig.

    Args:
        config_file: Optional overrides file
        environ: Environment to read TSUKIMI_* overrides from (default os.environ)

    Returns:
        Immutable SetupConfig.
    """
    if environ is None:
        environ = os.environ

    raw = read_config_file(config_file)
    for key in SetupConfig.__dataclass_fields__:
        env_value = environ.get(ENV_PREFIX + key.upper())
        if env_value is not None:
            raw[key] = env_value.strip()

    defaults = SetupConfig()
    kwargs = {}

    if raw.get('project_name'):
        kwargs['project_name'] = raw['project_name']

    if raw.get('home_root'):
        kwargs['home_root'] = Path(raw['home_root'])

    if raw.get('known_accounts'):
        accounts = tuple(a.strip() for a in raw['known_accounts'].split(',') if a.strip())
        if accounts:
            kwargs['known_accounts'] = accounts

    scope = raw.get('app_unit_scope')
    if scope:
        if scope.lower() in VALID_SCOPES:
            kwargs['app_unit_scope'] = scope.lower()
        else:
            logger.warning(f"Invalid app_unit_scope '{scope}', using {defaults.app_unit_scope}")

    delay = raw.get('reboot_delay_seconds')
    if delay:
        try:
            parsed = int(delay)
            if parsed < 0:
                raise ValueError(delay)
            kwargs['reboot_delay_seconds'] = parsed
        except ValueError:
            logger.warning(f"Invalid reboot_delay_seconds '{delay}', using {defaults.reboot_delay_seconds}")

    if raw.get('rust_log'):
        kwargs['rust_log'] = raw['rust_log']

    return SetupConfig(**kwargs)
