"""
Centralized settings for the gallery builder.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.
    ``GallerySettings`` is the one place that knows where the official
    examples live, which container runs them and where the website is
    written. CLI options override individual fields; everything else comes
    from ``GALLERY_*`` environment variables or a ``.env`` file.

Examples:
    >>> from gallery.core.settings import get_settings
    >>> settings = get_settings()
    >>> settings.container_image
    'ghcr.io/evalf/nutils:7'

    Overriding from the environment::

        GALLERY_SANDBOX_RUNTIME=docker GALLERY_WORKERS=4 gallery build

Tags:
    settings, configuration, pydantic, environment, gallery

Doc-Types:
    - API Reference
    - Configuration Guide
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from gallery.core.errors import ConfigError


class GallerySettings(BaseSettings):
    """Gallery builder configuration.

    All fields can be set via ``GALLERY_*`` environment variables (e.g.
    ``GALLERY_CONTAINER_IMAGE=ghcr.io/evalf/nutils:8``). List fields take
    JSON (``GALLERY_VALIDATION_IMAGES='["img:7", "img:8"]'``).
    """

    model_config = SettingsConfigDict(
        env_prefix="GALLERY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Official examples ────────────────────────────────────────
    include_official: bool = Field(default=True, description="Fetch and build the official examples")
    official_repository: str = Field(default="https://github.com/evalf/nutils.git")
    official_branch: str = Field(default="release/7")
    official_examples_dir: str = Field(
        default="examples",
        description="Directory inside the official repository holding example scripts",
    )
    official_authors: list[str] = Field(default=["Evalf", "other Nutils contributors"])

    # ── User examples ────────────────────────────────────────────
    user_examples_dir: Path = Field(
        default=Path("examples"),
        description="Local directory with declarative *.yaml descriptors",
    )

    # ── Sandbox ──────────────────────────────────────────────────
    container_image: str = Field(default="ghcr.io/evalf/nutils:7")
    sandbox_runtime: str = Field(default="podman", description="podman or docker")
    library_dir: str = Field(
        default="nutils",
        description="Top-level directory renamed in checkouts so scripts import the installed library",
    )
    run_timeout_seconds: float = Field(default=3600.0, ge=0, description="0 disables the timeout")
    git_timeout_seconds: float = Field(default=300.0, gt=0)

    # ── Output ───────────────────────────────────────────────────
    target_dir: Path = Field(default=Path("target/website"))
    static_dir: Path = Field(default=Path("static"))
    templates_dir: Path | None = Field(
        default=None,
        description="Override for the packaged Jinja2 templates",
    )
    cache_dir: Path | None = Field(
        default=None,
        description="Where bare repositories are kept; a temporary directory when unset",
    )
    status_file: Path = Field(default=Path("target/status.json"))

    # ── Batch ────────────────────────────────────────────────────
    reuse_outputs: bool = Field(
        default=False,
        description="Skip examples whose output directory carries a completion marker",
    )
    workers: int = Field(default=1, ge=1)
    validation_images: list[str] = Field(default_factory=list)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("sandbox_runtime")
    @classmethod
    def _known_runtime(cls, value: str) -> str:
        if Path(value).name not in ("podman", "docker"):
            raise ValueError(f"unsupported sandbox runtime {value!r}; use podman or docker")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    @property
    def run_timeout(self) -> float | None:
        """Timeout for one sandbox run, ``None`` when disabled."""
        return self.run_timeout_seconds or None


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, GallerySettings] = {}


def get_settings(*, _force_reload: bool = False, **overrides) -> GallerySettings:
    """Load, validate, and cache a :class:`GallerySettings` instance.

    Keyword overrides (typically CLI options) take precedence over the
    environment. ``None`` overrides are ignored so callers can pass optional
    CLI values straight through.

    Raises:
        ConfigError: a value from the environment or an override is invalid.
    """
    overrides = {k: v for k, v in overrides.items() if v is not None}
    cache_key = repr(sorted(overrides.items()))

    if not _force_reload and cache_key in _settings_cache:
        return _settings_cache[cache_key]

    try:
        settings = GallerySettings(**overrides)
    except ValidationError as e:
        problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise ConfigError(f"Invalid configuration: {problems}", cause=e) from e
    _settings_cache[cache_key] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (primarily for testing)."""
    _settings_cache.clear()
