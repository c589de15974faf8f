"""
Tsukimi Speaker Setup - Environment Resolution

Works out which account owns the project and should run the speaker,
without asking anybody. The orchestrator is started by root at boot
(rc.local or a systemd oneshot), by sudo, or by hand, so the answer
can't simply be "whoever is running this".

Resolution order:
1. SUDO_USER - the original account when re-invoked with elevated privilege
2. The current account, unless it is root
3. Conventional accounts (pi, tsukimi) whose home directory exists
4. The first directory under /home, sorted by name
"""

import os
import pwd
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from tsukimi_setup import constants
from tsukimi_setup.exceptions.environment_resolution_exception import EnvironmentResolutionException

from .config import SetupConfig
from .paths import (
    SETUP_COMPLETE_FLAG_NAME,
    SETUP_LOG_NAME,
    SETUP_LOCK_NAME,
    TARGET_DIR_NAME,
    USER_UNIT_RELATIVE_DIR,
    CARGO_BIN_RELATIVE_DIR,
)

logger = logging.getLogger(__name__)

IDENTITY_HINT_ENV = 'SUDO_USER'
PRIVILEGED_ACCOUNT = 'root'


@dataclass(frozen=True)
class EnvironmentContext:
    account: str
    home: Path
    project_dir: Path

    @property
    def setup_complete_flag(self) -> Path:
        return self.home / SETUP_COMPLETE_FLAG_NAME

    @property
    def log_file(self) -> Path:
        return self.home / SETUP_LOG_NAME

    @property
    def lock_file(self) -> Path:
        return self.home / SETUP_LOCK_NAME

    @property
    def binary_path(self) -> Path:
        return self.project_dir / TARGET_DIR_NAME / constants.BUILD_PROFILE / constants.BINARY_NAME

    @property
    def user_unit_dir(self) -> Path:
        return self.home / USER_UNIT_RELATIVE_DIR

    @property
    def cargo_bin_dir(self) -> Path:
        return self.home / CARGO_BIN_RELATIVE_DIR


def current_account(environ: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Name of the account running this process ($USER, then the passwd entry)."""
    if environ is None:
        environ = os.environ

    user = environ.get('USER')
    if user:
        return user

    try:
        return pwd.getpwuid(os.geteuid()).pw_name
    except KeyError:
        return None


def resolve_account(config: SetupConfig, environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Pick the non-privileged account to provision for.

    Raises:
        EnvironmentResolutionException: No account could be found at all.
    """
    if environ is None:
        environ = os.environ

    hint = environ.get(IDENTITY_HINT_ENV)
    if hint and hint != PRIVILEGED_ACCOUNT:
        return hint

    user = current_account(environ)
    if user and user != PRIVILEGED_ACCOUNT:
        return user

    for name in config.known_accounts:
        if (config.home_root / name).is_dir():
            return name

    try:
        entries = sorted(
            entry.name for entry in config.home_root.iterdir()
            if entry.is_dir() and not entry.name.startswith('.')
        )
    except OSError as e:
        raise EnvironmentResolutionException(str(config.home_root), str(e)) from e

    if not entries:
        raise EnvironmentResolutionException(str(config.home_root), "No home directories found.")

    return entries[0]


def resolve_environment(
    config: SetupConfig,
    environ: Optional[Mapping[str, str]] = None
) -> EnvironmentContext:
    """
    Resolve the EnvironmentContext for this invocation.

    The project directory is not checked here: callers report a missing one
    with report_project_dir once their log is set up, and decide whether it
    is fatal.
    """
    account = resolve_account(config, environ)
    home = config.home_root / account
    return EnvironmentContext(account=account, home=home, project_dir=home / config.project_name)


def report_project_dir(ctx: EnvironmentContext) -> bool:
    """Log a warning if the project directory is missing. Returns True if it exists."""
    if ctx.project_dir.is_dir():
        return True
    logger.warning(f"Project directory not found: {ctx.project_dir}")
    return False
