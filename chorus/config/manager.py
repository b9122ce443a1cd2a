"""Configuration manager for reading/writing Chorus config files."""

from __future__ import annotations

import logging
import os
import platform
import stat
import tomllib
from pathlib import Path

import tomli_w

from chorus.config.defaults import DEFAULT_CONFIG
from chorus.config.schema import ChorusConfig

logger = logging.getLogger(__name__)

_CONFIG_DIR = Path("~/.config/chorus").expanduser()
_CONFIG_FILE = "config.toml"

# environment variable -> (section, field)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "CHORUS_DISCORD_TOKEN": ("discord", "bot_token"),
    "CHORUS_ENCRYPTION_KEY": ("security", "encryption_key"),
    "CHORUS_DATA_DIR": ("chorus", "data_dir"),
}


class ConfigManager:
    """Manages reading, writing, and locating the Chorus config file.

    The config lives at ``~/.config/chorus/config.toml``.  If the file does
    not exist, :meth:`load` returns a :class:`ChorusConfig` populated from
    defaults.  Secrets listed in :data:`ENV_OVERRIDES` are taken from the
    environment when set, so tokens never have to be written to disk.
    """

    def __init__(self, config_dir: Path | None = None) -> None:
        self._config_dir = config_dir or _CONFIG_DIR

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load(self, apply_env: bool = True) -> ChorusConfig:
        """Load configuration from disk, falling back to defaults.

        Args:
            apply_env: Overlay secrets from the environment.  Pass ``False``
                when the result will be written back to disk.
        """
        path = self.get_config_path()
        raw: dict[str, object] = {}
        if not path.is_file():
            logger.debug("Config file not found at %s, using defaults", path)
        else:
            try:
                with open(path, "rb") as fh:
                    raw = tomllib.load(fh)
            except (tomllib.TOMLDecodeError, OSError) as exc:
                logger.warning("Failed to read config at %s: %s; using defaults", path, exc)

        merged = _deep_merge(DEFAULT_CONFIG, raw)
        if apply_env:
            _apply_env_overrides(merged)
        return ChorusConfig(**merged)

    def save(self, config: ChorusConfig) -> None:
        """Persist configuration to disk as TOML (``chmod 600`` on POSIX)."""
        path = self.get_config_path()
        path.parent.mkdir(parents=True, exist_ok=True)

        data = config.model_dump()
        with open(path, "wb") as fh:
            tomli_w.dump(data, fh)

        if platform.system() in ("Linux", "Darwin"):
            os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)  # 0o600

        logger.debug("Config saved to %s", path)

    def exists(self) -> bool:
        """Return ``True`` if the config file exists on disk."""
        return self.get_config_path().is_file()

    def get_config_path(self) -> Path:
        """Return the full path to the config TOML file."""
        return self._config_dir / _CONFIG_FILE


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _deep_merge(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    """Recursively merge *override* into a copy of *base*.

    Nested dicts are merged rather than replaced so that partial TOML
    sections work.
    """
    merged: dict[str, object] = {}
    for key in {*base, *override}:
        base_val = base.get(key)
        over_val = override.get(key)
        if isinstance(base_val, dict) and isinstance(over_val, dict):
            merged[key] = _deep_merge(base_val, over_val)  # type: ignore[arg-type]
        elif key in override:
            merged[key] = over_val
        else:
            merged[key] = base_val
    return merged


def _apply_env_overrides(data: dict[str, object]) -> None:
    for env_name, (section, field) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if not value:
            continue
        # copy so the shared defaults are never mutated
        block = dict(data.get(section) or {})
        block[field] = value
        data[section] = block
