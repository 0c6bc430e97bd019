"""Artifact extraction -- execution log in, selected image filenames out."""

from gallery.artifacts.scanner import LOG_FILENAME, ImageEvent, LogLinePattern, iter_events, scan_log
from gallery.artifacts.selector import (
    ImageSequences,
    SelectedArtifacts,
    collect_sequences,
    nth_or_last,
    select_artifacts,
    select_images,
    select_thumbnail,
)

__all__ = [
    "LOG_FILENAME",
    "ImageEvent",
    "LogLinePattern",
    "iter_events",
    "scan_log",
    "ImageSequences",
    "SelectedArtifacts",
    "collect_sequences",
    "nth_or_last",
    "select_images",
    "select_thumbnail",
    "select_artifacts",
]
