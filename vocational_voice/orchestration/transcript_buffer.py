"""
Transcript buffer for merging interim and final recognition fragments.

Merge rule: fragments are keyed by recognizer result index. A final fragment
for an index is sticky; later interim fragments for that index are ignored.
The buffer value is the final fragments joined in index order, or the most
recent interim fragment when no final fragment exists yet.
"""

import logging
from typing import Dict, List, Optional
from datetime import datetime

logger = logging.getLogger(__name__)


class TranscriptEntry:
    """Single transcript fragment with metadata."""

    def __init__(self, index: int, text: str, confidence: float, is_final: bool):
        self.index = index
        self.text = text
        self.confidence = confidence
        self.is_final = is_final
        self.timestamp = datetime.now()

    def __repr__(self) -> str:
        return (
            f"TranscriptEntry(index={self.index}, text='{self.text[:30]}', "
            f"confidence={self.confidence:.2f}, is_final={self.is_final})"
        )


class TranscriptBuffer:
    """
    Holds the transcript of one Listening phase.

    Key Features:
    - Per-index slots so a final fragment overrides interim ones
    - Deterministic value under out-of-order interim/final delivery
    - Locking after stop so lagging recognizer events are ignored
    """

    def __init__(self):
        self._final_entries: Dict[int, TranscriptEntry] = {}
        self._latest_interim: Optional[TranscriptEntry] = None
        self._is_locked = False
        self._fragment_count = 0

    def add_partial(self, index: int, text: str, confidence: float = 0.0) -> bool:
        """
        Add an interim fragment.

        Args:
            index: Recognizer result index
            text: Interim transcript text
            confidence: Recognition confidence (0.0-1.0)

        Returns:
            True if the fragment was applied
        """
        if self._is_locked:
            logger.debug("Buffer is locked - ignoring interim fragment")
            return False

        if index in self._final_entries:
            logger.debug(f"Interim fragment for finalized index {index} ignored")
            return False

        self._latest_interim = TranscriptEntry(index, text, confidence, is_final=False)
        self._fragment_count += 1
        logger.debug(f"Interim fragment [{index}]: {text[:50]}")
        return True

    def add_final(self, index: int, text: str, confidence: float = 0.0) -> bool:
        """
        Add a final fragment. Overrides any interim value for the same index.

        Args:
            index: Recognizer result index
            text: Final transcript text
            confidence: Recognition confidence (0.0-1.0)

        Returns:
            True if the fragment was applied
        """
        if self._is_locked:
            logger.debug("Buffer is locked - ignoring final fragment")
            return False

        self._final_entries[index] = TranscriptEntry(index, text, confidence, is_final=True)
        if self._latest_interim is not None and self._latest_interim.index <= index:
            self._latest_interim = None
        self._fragment_count += 1
        logger.info(f"Final fragment [{index}]: {text}")
        return True

    def get_final_text(self) -> str:
        """Final fragments joined in index order."""
        parts = [
            self._final_entries[index].text.strip()
            for index in sorted(self._final_entries)
        ]
        return " ".join(part for part in parts if part)

    def get_current_partial(self) -> str:
        """Most recent interim fragment (empty string if none)."""
        if self._latest_interim is None:
            return ""
        return self._latest_interim.text.strip()

    @property
    def text(self) -> str:
        """Best-known value: final fragments, else latest interim."""
        return self.get_final_text() or self.get_current_partial()

    def get_avg_confidence(self) -> float:
        """
        Average confidence across final fragments.

        Returns:
            Average confidence (0.0-1.0), or 0.0 if no finals
        """
        if not self._final_entries:
            return 0.0

        total = sum(entry.confidence for entry in self._final_entries.values())
        return total / len(self._final_entries)

    def lock(self):
        """Lock the buffer; later fragments are dropped."""
        self._is_locked = True
        logger.debug("Buffer locked")

    def is_locked(self) -> bool:
        """Check if buffer is currently locked."""
        return self._is_locked

    def has_final_transcripts(self) -> bool:
        """Check if any final fragments exist."""
        return bool(self._final_entries)

    def entries(self) -> List[TranscriptEntry]:
        """Final entries in index order."""
        return [self._final_entries[index] for index in sorted(self._final_entries)]

    def clear(self):
        """Clear all fragments and unlock."""
        self._final_entries.clear()
        self._latest_interim = None
        self._fragment_count = 0
        self._is_locked = False
        logger.debug("Buffer cleared")

    def __repr__(self) -> str:
        locked_status = "locked" if self._is_locked else "unlocked"
        return (
            f"TranscriptBuffer(final={len(self._final_entries)}, "
            f"fragments={self._fragment_count}, {locked_status})"
        )
