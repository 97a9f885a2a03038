"""Server profiles: model, persistent store and configuration wizard."""

from .models import (
    PROJECT_PRESETS,
    PROJECT_TYPES,
    Environment,
    ProjectPreset,
    ServerProfile,
    UploadMode,
    preset_for,
)
from .store import ProfileStore
from .wizard import ProfileWizard

__all__ = [
    "PROJECT_PRESETS",
    "PROJECT_TYPES",
    "Environment",
    "ProjectPreset",
    "ServerProfile",
    "UploadMode",
    "preset_for",
    "ProfileStore",
    "ProfileWizard",
]
