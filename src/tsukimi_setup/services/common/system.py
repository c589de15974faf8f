"""
Tsukimi Speaker Setup - System Utilities

Functions for running external commands (apt, rustup, cargo, systemctl),
switching identity between root and the speaker account, and publishing
progress to systemd.
"""

import os
import pwd
import time
import logging
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import sdnotify

from .config import SCOPE_SYSTEM, SCOPE_USER
from .paths import USER_RUNTIME_ROOT

logger = logging.getLogger(__name__)

# Shared systemd notifier instance
_sd_notifier: Optional[sdnotify.SystemdNotifier] = None

DEFAULT_COMMAND_TIMEOUT = 10  # seconds

# Exit status reported when a command can't be started at all
COMMAND_NOT_FOUND_STATUS = 127


def get_systemd_notifier() -> sdnotify.SystemdNotifier:
    """
    Get the shared systemd notifier instance.

    Returns:
        SystemdNotifier instance for communicating with systemd.
    """
    global _sd_notifier
    if _sd_notifier is None:
        _sd_notifier = sdnotify.SystemdNotifier()
    return _sd_notifier


def notify_status(message: str) -> None:
    """Publish a STATUS= line (shown by `systemctl status`). No-op outside systemd."""
    get_systemd_notifier().notify(f"STATUS={message}")


def is_privileged() -> bool:
    return os.geteuid() == 0


def privileged(cmd: Sequence[str]) -> List[str]:
    """Prefix cmd with sudo unless already running as root."""
    if is_privileged():
        return list(cmd)
    return ['sudo'] + list(cmd)


def account_env(account: str, home: Optional[Path] = None,
                extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    Environment a command needs to act as account from another identity.

    XDG_RUNTIME_DIR is what lets `systemctl --user` find the account's
    service manager. extra is added last; sudo resets the environment, so
    anything the command needs has to be passed here.
    """
    env = {}
    try:
        uid = pwd.getpwnam(account).pw_uid
        env['XDG_RUNTIME_DIR'] = str(USER_RUNTIME_ROOT / str(uid))
    except KeyError:
        logger.warning(f"No passwd entry for {account}; user services may be unreachable")
    if home is not None:
        env['HOME'] = str(home)
    if extra:
        env.update(extra)
    return env


def as_account(cmd: Sequence[str], account: str, home: Optional[Path] = None,
               env: Optional[Dict[str, str]] = None) -> List[str]:
    """
    Build a command that runs cmd as account.

    Runs cmd unchanged when this process already is the account (the caller
    then passes env to the process itself), otherwise goes through
    `sudo -u <account> env ...` with env on the command line.
    """
    try:
        running_as = pwd.getpwuid(os.geteuid()).pw_name
    except KeyError:
        running_as = None

    if running_as == account:
        return list(cmd)

    env_args = [f"{key}={value}" for key, value in account_env(account, home, env).items()]
    return ['sudo', '-u', account, 'env'] + env_args + list(cmd)


def run_command(cmd: Sequence[str], cwd: Path = None, timeout: int = DEFAULT_COMMAND_TIMEOUT,
                input_text: Optional[str] = None) -> Tuple[bool, str, str]:
    """Run a command quietly and return (success, stdout, stderr)."""
    try:
        result = subprocess.run(
            list(cmd),
            cwd=cwd,
            input=input_text,
            capture_output=True,
            text=True,
            timeout=timeout
        )
        return result.returncode == 0, result.stdout, result.stderr
    except subprocess.TimeoutExpired:
        return False, "", "Command timed out"
    except OSError as e:
        return False, "", str(e)


def run_logged(cmd: Sequence[str], cwd: Path = None, env: Optional[Dict[str, str]] = None) -> int:
    """
    Run a command to completion, streaming its output into the log.

    stdout and stderr are merged and each line is logged as it arrives, so
    long package installs and builds show progress in the terminal and in
    the setup log at the same time. There is no timeout: apt and cargo
    can legitimately run for a long time on a Pi.

    Args:
        cmd: Command and arguments
        cwd: Working directory
        env: Extra environment variables on top of os.environ

    Returns:
        The command's exit status (127 if it could not be started).
    """
    full_env = None
    if env:
        full_env = dict(os.environ)
        full_env.update(env)

    logger.info(f"$ {' '.join(cmd)}")
    try:
        process = subprocess.Popen(
            list(cmd),
            cwd=cwd,
            env=full_env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors='replace',
            bufsize=1
        )
    except OSError as e:
        logger.error(f"Could not start {cmd[0]}: {e}")
        return COMMAND_NOT_FOUND_STATUS

    with process.stdout:
        for line in process.stdout:
            logger.info(line.rstrip('\n'))
    returncode = process.wait()

    if returncode != 0:
        logger.error(f"Command failed with exit status {returncode}: {' '.join(cmd)}")
    return returncode


def systemctl_command(scope: str, *args: str, account: Optional[str] = None,
                      home: Optional[Path] = None) -> List[str]:
    """
    Build a systemctl invocation for the given scope.

    System scope goes through sudo when needed. User scope must run as the
    account that owns the user manager.
    """
    if scope == SCOPE_SYSTEM:
        return privileged(['systemctl'] + list(args))
    if scope == SCOPE_USER:
        if not account:
            raise ValueError("account is required for user scope systemctl")
        return as_account(['systemctl', '--user'] + list(args), account, home)
    raise ValueError(f"Unknown systemd scope: {scope}")


def systemctl(scope: str, *args: str, account: Optional[str] = None,
              home: Optional[Path] = None) -> bool:
    """Run systemctl in the given scope with output mirrored to the log."""
    cmd = systemctl_command(scope, *args, account=account, home=home)
    return run_logged(cmd) == 0


def enable_linger(account: str) -> bool:
    """Keep the account's user manager running without a login session."""
    return run_logged(privileged(['loginctl', 'enable-linger', account])) == 0


def reboot_host(delay_seconds: int) -> bool:
    """
    Request a reboot after delay_seconds.

    The delay gives the log file and terminal a moment to flush the final
    lines before the machine goes down.
    """
    logger.info(f"Rebooting in {delay_seconds}s...")
    for handler in logging.getLogger().handlers:
        handler.flush()
    time.sleep(delay_seconds)
    return run_logged(privileged(['reboot'])) == 0
