"""Gallery core -- errors and settings shared by every stage.

Architecture::

    errors.py      Structured error hierarchy (GalleryError and subclasses)
    settings.py    GallerySettings (pydantic-settings, GALLERY_* env vars)
"""

from gallery.core.errors import (
    ConfigError,
    DescriptorError,
    ErrorCategory,
    ErrorContext,
    FetchError,
    GalleryError,
    OutputError,
    RenderError,
    SandboxError,
    ScriptFailed,
)
from gallery.core.settings import GallerySettings, clear_settings_cache, get_settings

__all__ = [
    # Errors
    "ErrorCategory",
    "ErrorContext",
    "GalleryError",
    "DescriptorError",
    "FetchError",
    "SandboxError",
    "ScriptFailed",
    "RenderError",
    "OutputError",
    "ConfigError",
    # Settings
    "GallerySettings",
    "get_settings",
    "clear_settings_cache",
]
