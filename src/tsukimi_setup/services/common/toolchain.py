"""
Tsukimi Speaker Setup - Rust Toolchain

rustup installs per user into ~/.cargo, so every toolchain command runs as
the speaker account with that account's cargo directory, whichever identity
the orchestrator itself has.
"""

import os
import logging
import tempfile
from pathlib import Path

import certifi
import requests

from .environment import EnvironmentContext
from .system import as_account, run_command, run_logged

logger = logging.getLogger(__name__)

RUSTUP_INIT_URL = 'https://sh.rustup.rs'
DEFAULT_DOWNLOAD_TIMEOUT = 60  # seconds


def toolchain_binary(ctx: EnvironmentContext, tool: str) -> str:
    """Path to a cargo-installed tool, or the bare name to search PATH."""
    candidate = ctx.cargo_bin_dir / tool
    if candidate.exists():
        return str(candidate)
    return tool


def is_toolchain_installed(ctx: EnvironmentContext) -> bool:
    """Probe `rustc --version` as the account."""
    cmd = as_account([toolchain_binary(ctx, 'rustc'), '--version'], ctx.account, ctx.home)
    success, stdout, _ = run_command(cmd)
    if success:
        logger.info(f"Rust is already installed: {stdout.strip()}")
    return success


def download_installer(dest: Path, timeout: int = DEFAULT_DOWNLOAD_TIMEOUT) -> bool:
    """
    Download the rustup-init shell script to dest.

    Returns:
        True if the script was saved.
    """
    logger.info(f"Downloading rustup installer from {RUSTUP_INIT_URL}...")
    try:
        response = requests.get(RUSTUP_INIT_URL, timeout=timeout, verify=certifi.where())
    except requests.exceptions.RequestException as e:
        logger.error(f"Failed to download rustup installer: {e}")
        return False

    if response.status_code != 200:
        logger.error(f"rustup installer download returned status {response.status_code}")
        return False

    dest.write_bytes(response.content)
    # Readable by the account when we run as root
    os.chmod(dest, 0o755)
    return True


def install_toolchain(ctx: EnvironmentContext) -> bool:
    """Run rustup-init non-interactively as the account."""
    fd, script_name = tempfile.mkstemp(prefix='rustup-init-', suffix='.sh')
    os.close(fd)
    script = Path(script_name)
    try:
        if not download_installer(script):
            return False

        logger.info("Installing Rust...")
        status = run_logged(as_account(['sh', str(script), '-y'], ctx.account, ctx.home))
        if status != 0:
            logger.error("Rust installation failed")
            return False
    finally:
        script.unlink(missing_ok=True)

    logger.info("Rust installation complete")
    return True


def ensure_toolchain(ctx: EnvironmentContext) -> bool:
    """Install Rust unless the version probe already succeeds."""
    if is_toolchain_installed(ctx):
        return True
    return install_toolchain(ctx)
