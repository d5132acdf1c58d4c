"""Session management: control plane, transcript persistence, attachments, conversations."""

from adkchat.session.attachments import AttachmentCheck, encode_file, validate_file
from adkchat.session.control import SessionService
from adkchat.session.conversation import Conversation
from adkchat.session.store import TranscriptStore

__all__ = [
    "AttachmentCheck",
    "Conversation",
    "SessionService",
    "TranscriptStore",
    "encode_file",
    "validate_file",
]
