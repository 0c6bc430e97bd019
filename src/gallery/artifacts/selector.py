"""Artifact selection.

A script may render the same logical figure many times (one per solver
iteration, say). Selection reduces each name's sequence to one filename
and then picks a thumbnail from the result::

    events ──► collect_sequences ──► ImageSequences
                                          │
                                 select_images(image_index)
                                          │        per name: index or LAST of sequence
                                          ▼
                                   [file, file, ...]
                                          │
                               select_thumbnail(thumbnail_index)
                                          │        index or LAST of selected list
                                          ▼
                                     file | None

Note the two different collections "last" is taken over: the per-name
sequence for images, the final selected list for the thumbnail.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeVar

from gallery.artifacts.scanner import DEFAULT_PATTERN, ImageEvent, LogLinePattern, scan_log
from gallery.metadata.models import ExampleRecord

T = TypeVar("T")


def nth_or_last(items: Iterable[T], index: int | None) -> T | None:
    """Item ``index`` of ``items``, or the last item when ``index`` is None.

    Returns None when ``items`` is empty or too short.
    """
    if index is None:
        last = None
        for last in items:
            pass
        return last
    for i, item in enumerate(items):
        if i == index:
            return item
    return None


class ImageSequences:
    """Ordered mapping of logical name to the filenames rendered for it.

    With ``names`` given, only those names are tracked and they keep that
    fixed order (a name never seen keeps an empty sequence). Without, names
    are added in first-seen order.
    """

    def __init__(self, names: Sequence[str] | None = None):
        self.fixed = names is not None
        self._sequences: dict[str, list[str]] = {name: [] for name in names or ()}

    def add(self, event: ImageEvent) -> bool:
        """Record an event; returns False when its name is not tracked."""
        sequence = self._sequences.get(event.name)
        if sequence is None:
            if self.fixed:
                return False
            sequence = self._sequences[event.name] = []
        sequence.append(event.filename)
        return True

    def names(self) -> list[str]:
        return list(self._sequences)

    def __getitem__(self, name: str) -> list[str]:
        return self._sequences[name]

    def __iter__(self) -> Iterator[tuple[str, list[str]]]:
        return iter(self._sequences.items())

    def __len__(self) -> int:
        return len(self._sequences)

    def as_dict(self) -> dict[str, list[str]]:
        return {name: list(files) for name, files in self._sequences.items()}


def collect_sequences(events: Iterable[ImageEvent], image_names: Sequence[str] | None = None) -> ImageSequences:
    sequences = ImageSequences(image_names)
    for event in events:
        sequences.add(event)
    return sequences


def select_images(sequences: ImageSequences, image_index: int | None = None) -> list[str]:
    """One filename per name, in name order; empty or short sequences contribute nothing."""
    selected = []
    for _, filenames in sequences:
        filename = nth_or_last(filenames, image_index)
        if filename is not None:
            selected.append(filename)
    return selected


def select_thumbnail(images: Sequence[str], thumbnail_index: int | None = None) -> str | None:
    return nth_or_last(images, thumbnail_index)


@dataclass(frozen=True)
class SelectedArtifacts:
    """Images chosen for one example's page, plus its index thumbnail."""

    images: list[str] = field(default_factory=list)
    thumbnail: str | None = None
    sequences: dict[str, list[str]] = field(default_factory=dict)


def select_artifacts(
    record: ExampleRecord,
    log_path: Path | str,
    pattern: LogLinePattern = DEFAULT_PATTERN,
) -> SelectedArtifacts:
    """Scan ``log_path`` and apply the record's selection policy."""
    sequences = collect_sequences(scan_log(log_path, pattern), record.image_names)
    images = select_images(sequences, record.image_index)
    return SelectedArtifacts(
        images=images,
        thumbnail=select_thumbnail(images, record.thumbnail_index),
        sequences=sequences.as_dict(),
    )
