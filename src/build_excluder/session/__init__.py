"""
Session state shared between the pre-build and post-build hooks.
"""

from .tracker import (
    SessionTracker,
    SessionStore,
    InMemorySessionStore,
    FileSessionStore,
    default_session_store,
)

__all__ = [
    "SessionTracker",
    "SessionStore",
    "InMemorySessionStore",
    "FileSessionStore",
    "default_session_store",
]
