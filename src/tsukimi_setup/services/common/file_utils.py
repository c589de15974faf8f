"""
Tsukimi Speaker Setup - File Helpers
"""

import os
import shutil
import logging
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, content: str, mode: Optional[int] = None) -> None:
    """
    Replace path with content in one rename.

    Readers either see the previous file or the complete new one, never a
    partially written file. Raises OSError on failure.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.tmp-", dir=str(path.parent))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        if mode is not None:
            os.chmod(tmp_name, mode)
        Path(tmp_name).replace(path)
    finally:
        try:
            Path(tmp_name).unlink(missing_ok=True)
        except OSError:
            pass


def chown_to_account(path: Path, account: str) -> bool:
    """
    Best-effort chown of a file written by root on behalf of an account.

    Only attempted when running as root for another account. Failures are
    logged at debug level and otherwise ignored.
    """
    if os.geteuid() != 0 or account == 'root':
        return False

    try:
        shutil.chown(path, user=account, group=account)
        return True
    except (LookupError, OSError) as e:
        logger.debug(f"Could not chown {path} to {account}: {e}")
        return False
