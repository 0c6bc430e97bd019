"""Embedded example descriptors (official examples).

Official examples carry their metadata in the script's leading comment
block::

    # Poisson problem
    #
    # This example solves the Poisson problem on a unit square.
    #
    # The solution is compared with the exact one.

    from nutils import mesh, function
    ...

    # example:thumbnail=1:tags=laplace,2D

Rules:
    - line 1 is ``# <name>``
    - line 2 is exactly ``#``
    - following contiguous ``#`` lines are the markdown description; a bare
      ``#`` is a blank line, ``# text`` is ``text``, any other ``#...`` line
      is a format violation
    - if the file's last line starts with ``# example:``, it is a modeline of
      ``:``-separated ``key=value`` items: ``thumbnail=<int>`` and
      ``tags=<comma list>`` (appended after the implicit ``official`` tag);
      any other key is an error

Authors and repository are organization constants; revision and script
path come from the git checkout the script lives in.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from gallery.core.errors import DescriptorError
from gallery.execution.git import GitCommandError, show_toplevel_and_head
from gallery.framework.logging import get_logger
from gallery.metadata.models import OFFICIAL_PREFIX, ExampleRecord

logger = get_logger(__name__)

MODELINE_PREFIX = "# example:"
OFFICIAL_TAG = "official"


@dataclass
class EmbeddedHeader:
    """Metadata parsed from a script's comment header."""

    name: str
    description: str
    thumbnail_index: int | None = None
    tags: list[str] = field(default_factory=lambda: [OFFICIAL_TAG])


def parse_header(code: str) -> EmbeddedHeader:
    """Parse the comment header and modeline of a script.

    Raises:
        DescriptorError: on any structural violation or unknown directive.
    """
    lines = iter(code.splitlines())

    first = next(lines, None)
    if first is None:
        raise DescriptorError("premature end of file")
    if not first.startswith("# "):
        raise DescriptorError("first line should be a '# <name>' comment")
    name = first[2:]

    if next(lines, None) != "#":
        raise DescriptorError("second line should be an empty comment")

    description: list[str] = []
    for line in lines:
        if not line.startswith("#"):
            break
        text = line[1:]
        if text.startswith(" "):
            description.append(text[1:])
        elif text:
            raise DescriptorError(f"expected space or newline after '#' in description line {line!r}")
        else:
            description.append("")

    header = EmbeddedHeader(
        name=name,
        description="".join(f"{text}\n" for text in description),
    )

    last = None
    for last in lines:
        pass
    if last is not None and last.startswith(MODELINE_PREFIX):
        _apply_modeline(header, last[len(MODELINE_PREFIX):])

    return header


def _apply_modeline(header: EmbeddedHeader, modeline: str) -> None:
    for item in modeline.split(":"):
        key, sep, arg = item.partition("=")
        if not sep:
            raise DescriptorError(f"invalid modeline item {item!r}: expected key=value")
        if key == "thumbnail":
            try:
                header.thumbnail_index = int(arg)
            except ValueError as e:
                raise DescriptorError(f"invalid thumbnail index {arg!r}", cause=e) from e
            if header.thumbnail_index < 0:
                raise DescriptorError(f"invalid thumbnail index {arg!r}")
        elif key == "tags":
            header.tags.extend(tag.strip() for tag in arg.split(",") if tag.strip())
        else:
            raise DescriptorError(f"invalid modeline: unknown directive {key!r}")


def relative_script_path(script: Path, toplevel: Path) -> str:
    """Path of ``script`` relative to ``toplevel`` in POSIX form.

    Raises:
        DescriptorError: the script does not live under ``toplevel``.
    """
    try:
        return script.resolve().relative_to(toplevel.resolve()).as_posix()
    except ValueError as e:
        raise DescriptorError(f"script is not inside repository root {toplevel}", cause=e) from e


def load_embedded(
    path: Path | str,
    *,
    repository: str,
    authors: Sequence[str],
    example_id: str | None = None,
    git_timeout: float | None = None,
) -> ExampleRecord:
    """Resolve an official example script into a record.

    The id defaults to ``official-<file stem>``.
    """
    path = Path(path)
    example_id = example_id or f"{OFFICIAL_PREFIX}{path.stem}"
    context = {"example_id": example_id, "path": str(path), "stage": "metadata"}

    try:
        code = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise DescriptorError(f"Cannot read script: {e}", cause=e).with_context(**context) from e

    try:
        header = parse_header(code)
        toplevel, commit = show_toplevel_and_head(path.resolve().parent, timeout=git_timeout)
        script = relative_script_path(path, toplevel)
    except GitCommandError as e:
        raise DescriptorError(f"Cannot determine repository revision: {e}", cause=e).with_context(**context) from e
    except DescriptorError as e:
        raise e.with_context(**context)

    logger.debug("metadata.embedded.loaded", example_id=example_id, script=script, revision=commit)
    return ExampleRecord(
        id=example_id,
        name=header.name,
        authors=tuple(authors),
        description=header.description,
        repository=repository,
        revision=commit,
        script=script,
        tags=tuple(header.tags),
        image_names=None,
        image_index=None,
        thumbnail_index=header.thumbnail_index,
    )
