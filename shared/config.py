"""
elfscope Configuration Management
==================================

Dataclass configuration tree persisted as TOML.  Missing keys fall back to
the dataclass defaults and unknown keys are ignored, so an older config file
keeps working after options are added.

References:
    - TOML v1.0.0 Specification. https://toml.io/en/v1.0.0
"""

from __future__ import annotations

import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore[no-redef]


# ---------------------------------------------------------------------------
# Default configuration file path relative to the project root
# ---------------------------------------------------------------------------
_DEFAULT_CONFIG_PATH: Path = Path(__file__).resolve().parent.parent / "config.toml"


@dataclass(frozen=False, slots=True)
class InspectConfig:
    """Settings for the inspection engine and the ``elfscope`` command.

    Attributes:
        max_file_size: Refuse files larger than this many bytes.
        validate: Run the validation layer after decoding.
        skip_null_section: Leave section 0 (``SHT_NULL``) out of listings.
        max_symbols: Cap on symbols listed per table; 0 lists none.
        show_dynamic: Include the dynamic section in summaries.
        use_name_index: Cache section name lookups per file.
    """

    max_file_size: int = 268_435_456  # 256 MiB
    validate: bool = True
    skip_null_section: bool = False
    max_symbols: int = 500
    show_dynamic: bool = True
    use_name_index: bool = True


@dataclass(frozen=False, slots=True)
class GlobalConfig:
    """Logging and output settings."""

    log_level: str = "WARNING"
    log_file: str = ""
    log_json: bool = False
    debug: bool = False
    version: str = "0.3.0"


@dataclass(frozen=False, slots=True)
class ScopeConfig:
    """Master configuration.

    Usage:
        >>> config = ScopeConfig.load()                  # from default path
        >>> config = ScopeConfig.load("custom.toml")     # from custom path
        >>> config.inspect.max_symbols
        500
    """

    global_settings: GlobalConfig = field(default_factory=GlobalConfig)
    inspect: InspectConfig = field(default_factory=InspectConfig)

    @classmethod
    def load(cls, path: str | Path | None = None) -> ScopeConfig:
        """Load configuration from a TOML file.

        Args:
            path: Filesystem path to a TOML configuration file.
                  Defaults to ``<project_root>/config.toml``.

        Returns:
            A fully-populated :class:`ScopeConfig` instance.

        Raises:
            FileNotFoundError: If *path* was given explicitly and does not
                exist.
        """
        config_path = Path(path) if path is not None else _DEFAULT_CONFIG_PATH

        if not config_path.exists():
            if path is not None:
                raise FileNotFoundError(
                    f"Configuration file not found: {config_path}"
                )
            return cls()

        with open(config_path, "rb") as fh:
            raw: dict[str, Any] = tomllib.load(fh)

        return cls(
            global_settings=cls._build_section(GlobalConfig, raw.get("global", {})),
            inspect=cls._build_section(InspectConfig, raw.get("inspect", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def _build_section(cls: type, data: dict[str, Any]) -> Any:
        """Instantiate dataclass *cls* from the keys it declares."""
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}  # type: ignore[attr-defined]
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        return cls(**filtered)


def get_config(path: str | Path | None = None) -> ScopeConfig:
    """Load the configuration once and share it between callers."""
    if not hasattr(get_config, "_cached") or path is not None:
        get_config._cached = ScopeConfig.load(path)  # type: ignore[attr-defined]
    return get_config._cached  # type: ignore[attr-defined]
