"""Conversation transcripts."""

from chatwarden.session.manager import TranscriptLine, TranscriptManager

__all__ = ["TranscriptLine", "TranscriptManager"]
