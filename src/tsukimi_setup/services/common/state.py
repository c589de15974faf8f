"""
Tsukimi Speaker Setup - Setup State

A single marker file in the account's home decides which phase runs:
absent means "never set up", present means "set up". Its content is only
informational - presence alone is authoritative, so an empty or garbled
marker still counts as complete.

The marker is written with a rename, never appended, so a power cut can't
leave a half-written file behind. Re-provisioning means deleting the marker
by hand.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from .file_utils import atomic_write_text, chown_to_account

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'


def current_timestamp() -> str:
    return datetime.now().strftime(TIMESTAMP_FORMAT)


@dataclass
class SetupState:
    completed: bool
    timestamp: str = ''
    note: str = ''

    @classmethod
    def from_file(cls, marker_file: Path) -> Optional['SetupState']:
        if not marker_file.exists():
            return None

        data = {}
        try:
            text = marker_file.read_text(encoding='utf-8', errors='replace')
        except OSError as e:
            logger.warning(f"Could not read setup marker {marker_file}: {e}")
            text = ''

        for line in text.splitlines():
            if ':' not in line:
                continue
            key, value = line.split(':', 1)
            data[key.strip()] = value.strip()

        return cls(
            completed=True,
            timestamp=data.get('completed_at', ''),
            note=data.get('note', ''),
        )

    def render(self) -> str:
        return "\n".join([
            f"completed: {'true' if self.completed else 'false'}",
            f"completed_at: {self.timestamp}",
            f"note: {self.note}",
        ]) + "\n"


class StateTracker:
    """Reads and writes the setup marker for one account."""

    def __init__(self, marker_file: Path, owner: Optional[str] = None):
        self.marker_file = marker_file
        self.owner = owner

    def is_complete(self) -> bool:
        return self.marker_file.exists()

    def read(self) -> Optional[SetupState]:
        return SetupState.from_file(self.marker_file)

    def mark_complete(self, note: str = '') -> bool:
        """
        Write the marker, replacing any previous content.

        Returns:
            True if the marker is now in place.
        """
        state = SetupState(completed=True, timestamp=current_timestamp(), note=note)
        try:
            atomic_write_text(self.marker_file, state.render(), mode=0o644)
        except OSError as e:
            logger.error(f"Failed to write setup marker {self.marker_file}: {e}")
            return False

        if self.owner:
            chown_to_account(self.marker_file, self.owner)
        logger.info(f"Created completion flag: {self.marker_file}")
        return True
