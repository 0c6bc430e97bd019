"""
Gallery - build a static example gallery from executed example scripts.

Subpackages:
- gallery.core: errors and settings
- gallery.framework.logging: structured logging
- gallery.metadata: declarative and embedded descriptors
- gallery.execution: revision fetching, sandboxed runs, validation ledger
- gallery.artifacts: execution-log scanning and image selection
- gallery.rendering: Jinja2 pages
- gallery.pipeline: the build and validation workflows
- gallery.cli: the `gallery` command
"""

__version__ = "0.3.0"
