"""ShellSight Server Module"""

from shellsight.server.replay import ReplaySession, ReplayController, Recording
from shellsight.server.storage import RecordingLibrary, StorageConfig
from shellsight.server.api import create_app

__all__ = [
    "ReplaySession", "ReplayController", "Recording",
    "RecordingLibrary", "StorageConfig",
    "create_app",
]
