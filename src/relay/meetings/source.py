"""Meeting-data source contract.

The relay consumes meeting records, panels and transcripts from the
meeting-notes service through this interface. Concrete clients live
outside this package and are plugged in by the CLI.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

from src.relay.meetings.schemas import Panel, SourceDocument, TranscriptSegment

# Renders transcript segments as markdown for the payload.
TranscriptFormatter = Callable[[list[TranscriptSegment]], str]


class MeetingNotFoundError(Exception):
    """The source has no meeting with the requested id."""


class MeetingSource(ABC):
    """Read-only access to the meeting-notes service."""

    @abstractmethod
    async def get_documents(self, limit: int) -> list[SourceDocument]:
        """Most recent meeting records, newest first, at most ``limit``."""
        ...

    @abstractmethod
    async def get_document(self, meeting_id: str) -> SourceDocument | None:
        """One meeting record, or None when it does not exist."""
        ...

    @abstractmethod
    async def get_document_panels(self, meeting_id: str) -> list[Panel]:
        """Structured-content panels attached to a meeting."""
        ...

    async def get_transcript(self, meeting_id: str) -> list[TranscriptSegment] | None:
        """Ordered transcript segments; None when the source has none."""
        return None
