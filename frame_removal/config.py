"""Configuration and settings management."""
import json
import logging
from pathlib import Path
from dataclasses import dataclass, asdict, fields, replace
from typing import Optional, Mapping, Any

from platformdirs import user_config_dir

logger = logging.getLogger(__name__)

APP_NAME = "FrameRemoval"


class ConfigError(Exception):
    """Raised when configuration is invalid or cannot be loaded/saved."""
    pass


@dataclass(frozen=True)
class FrameDetectionConfig:
    """Tunable thresholds for frame detection and re-encoding."""
    canny_low_threshold: float = 50
    canny_high_threshold: float = 150
    min_confidence: float = 0.5
    min_crop_percentage: float = 0.3
    max_crop_percentage: float = 0.99
    blur_kernel_size: float = 5
    jpeg_quality: int = 95
    png_compress_level: int = 0

    def __post_init__(self):
        validate_config(self)

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], strict: bool = True) -> 'FrameDetectionConfig':
        """
        Create config from a dictionary.

        Accepts both snake_case field names and the camelCase keys used by
        job messages (``cannyLowThreshold``, ``minConfidence``...).

        Args:
            data: Mapping of field names to values
            strict: Reject unknown keys when True, ignore them otherwise

        Raises:
            ConfigError: If a key is unknown (strict mode) or a value is invalid
        """
        return DEFAULT_CONFIG.merged(data, strict=strict)

    def merged(self, overrides: Optional[Mapping[str, Any]] = None, strict: bool = True) -> 'FrameDetectionConfig':
        """Return a copy with ``overrides`` applied over this config."""
        if not overrides:
            return self

        known = {f.name for f in fields(self)}
        values = {}
        for key, value in overrides.items():
            name = _normalize_key(key)
            if name not in known:
                if strict:
                    raise ConfigError(f"Unknown configuration key: {key}")
                logger.debug(f"Ignoring unknown configuration key: {key}")
                continue
            if value is None:
                continue
            values[name] = value

        try:
            return replace(self, **values)
        except TypeError as e:
            raise ConfigError(f"Invalid configuration value: {str(e)}") from e


def _normalize_key(key: str) -> str:
    # cannyLowThreshold -> canny_low_threshold
    out = []
    for ch in key:
        if ch.isupper():
            out.append('_')
            out.append(ch.lower())
        else:
            out.append(ch)
    return ''.join(out)


def validate_config(config: FrameDetectionConfig) -> None:
    """
    Validate that threshold values are logically consistent.

    Raises:
        ConfigError: On the first inconsistency found
    """
    for name in ('min_confidence', 'min_crop_percentage', 'max_crop_percentage'):
        value = getattr(config, name)
        if not 0.0 <= value <= 1.0:
            raise ConfigError(f"{name} must be within [0, 1], got {value}")

    if config.min_crop_percentage > config.max_crop_percentage:
        raise ConfigError(
            f"min_crop_percentage ({config.min_crop_percentage}) must not exceed "
            f"max_crop_percentage ({config.max_crop_percentage})"
        )

    if config.canny_low_threshold < 0 or config.canny_high_threshold < 0:
        raise ConfigError("Edge thresholds must be non-negative")

    if config.canny_low_threshold > config.canny_high_threshold:
        raise ConfigError(
            f"canny_low_threshold ({config.canny_low_threshold}) must not exceed "
            f"canny_high_threshold ({config.canny_high_threshold})"
        )

    if config.blur_kernel_size < 0:
        raise ConfigError(f"blur_kernel_size must be non-negative, got {config.blur_kernel_size}")

    if not 1 <= config.jpeg_quality <= 100:
        raise ConfigError(f"jpeg_quality must be within 1..100, got {config.jpeg_quality}")

    if not 0 <= config.png_compress_level <= 9:
        raise ConfigError(f"png_compress_level must be within 0..9, got {config.png_compress_level}")


DEFAULT_CONFIG = FrameDetectionConfig()


def get_config_path() -> Path:
    """
    Get the path to the configuration file.

    Returns:
        Path to settings.json
    """
    config_dir = Path(user_config_dir(APP_NAME))
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir / "settings.json"


def load_config(config_path: Optional[Path] = None) -> FrameDetectionConfig:
    """
    Load detection config from disk.

    A missing default settings file yields the defaults. An explicitly
    requested file that is missing or invalid is an error.

    Args:
        config_path: Optional explicit JSON file

    Returns:
        FrameDetectionConfig with loaded values

    Raises:
        ConfigError: If the file cannot be read or holds invalid values
    """
    explicit = config_path is not None
    config_path = config_path or get_config_path()

    if not config_path.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {config_path}")
        logger.info("No settings file found, using defaults")
        return DEFAULT_CONFIG

    try:
        with open(config_path, 'r') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to load config {config_path}: {e}")
        raise ConfigError(f"Failed to load config: {str(e)}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file must hold a JSON object: {config_path}")

    config = FrameDetectionConfig.from_dict(data, strict=explicit)
    logger.info(f"Loaded settings from {config_path}")
    return config


def save_config(config: FrameDetectionConfig, config_path: Optional[Path] = None) -> Path:
    """
    Save detection config to disk.

    Args:
        config: Config to save
        config_path: Optional explicit destination

    Returns:
        Path the config was written to

    Raises:
        ConfigError: If save fails
    """
    config_path = config_path or get_config_path()

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, 'w') as f:
            json.dump(config.to_dict(), f, indent=2)
        logger.info(f"Saved settings to {config_path}")
        return config_path
    except OSError as e:
        logger.error(f"Failed to save settings: {e}")
        raise ConfigError(f"Failed to save settings: {str(e)}") from e
