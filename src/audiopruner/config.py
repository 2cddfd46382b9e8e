"""Configuration management for AudioPruner."""

import os
import re
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator


def _normalize_extension(ext: str) -> str:
    ext = ext.strip().lower()
    return ext if ext.startswith(".") else f".{ext}"


class ToolConfig(BaseModel):
    """External media tool configuration."""

    ffmpeg_path: Optional[str] = Field(
        default=None,
        description="Directory containing ffmpeg/ffprobe, or the ffmpeg executable itself. "
        "Unset means search PATH.",
    )
    probe_timeout_seconds: int = Field(default=30, description="ffprobe timeout")
    remux_timeout_seconds: Optional[int] = Field(
        default=3600, description="ffmpeg remux timeout (null disables)"
    )

    @field_validator("probe_timeout_seconds", "remux_timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: Optional[int]) -> Optional[int]:
        """Validate timeouts are positive."""
        if v is not None and v <= 0:
            raise ValueError("Timeout must be a positive number of seconds")
        return v


class RemuxConfig(BaseModel):
    """Default remux policy."""

    keep_subtitles: bool = Field(default=True, description="Keep all subtitle streams")
    keep_chapters: bool = Field(default=True, description="Keep chapter metadata")
    create_backup: bool = Field(default=True, description="Copy the original before pruning")
    attachment_extensions: List[str] = Field(
        default=[".mkv"], description="Containers whose attachments (fonts, covers) are kept"
    )

    @field_validator("attachment_extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        """Normalize extensions to lowercase with a leading dot."""
        return [_normalize_extension(ext) for ext in v]


class LibraryConfig(BaseModel):
    """Media library configuration."""

    roots: List[str] = Field(default_factory=list, description="Library root directories")
    extensions: List[str] = Field(
        default=[".mkv", ".mp4", ".m4v", ".mov", ".avi", ".webm"],
        description="Video file extensions",
    )
    recursive: bool = Field(default=True, description="Scan roots recursively")

    @field_validator("extensions")
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        """Normalize extensions to lowercase with a leading dot."""
        return [_normalize_extension(ext) for ext in v]


class APIConfig(BaseModel):
    """API server configuration."""

    host: str = Field(default="0.0.0.0", description="API host")
    port: int = Field(default=9494, description="API port")
    admin_token: Optional[str] = Field(
        default=None, description="Shared token required for mutating endpoints"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    format: str = Field(default="json", description="Log format (json or text)")
    level: str = Field(default="info", description="Log level")
    output: Optional[str] = Field(
        default=None, description="Log file path (unset logs to console only)"
    )

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        if v not in ("json", "text"):
            raise ValueError("Log format must be 'json' or 'text'")
        return v

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        if v.lower() not in ("debug", "info", "warning", "error", "critical"):
            raise ValueError("Invalid log level")
        return v.lower()


class Config(BaseModel):
    """Main configuration model."""

    tools: ToolConfig = Field(default_factory=ToolConfig, description="Media tool configuration")
    remux: RemuxConfig = Field(default_factory=RemuxConfig, description="Default remux policy")
    library: LibraryConfig = Field(
        default_factory=LibraryConfig, description="Media library configuration"
    )
    api: APIConfig = Field(default_factory=APIConfig, description="API configuration")
    logging: LoggingConfig = Field(default_factory=LoggingConfig, description="Logging configuration")

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path) as f:
            raw_config = yaml.safe_load(f)

        if raw_config is None:
            raw_config = {}

        raw_config = cls._substitute_env_vars(raw_config)

        return cls(**raw_config)

    @staticmethod
    def _substitute_env_vars(obj: Any) -> Any:
        """Recursively substitute environment variables in configuration.

        Replaces ${VAR_NAME} with os.environ['VAR_NAME'].
        """
        if isinstance(obj, dict):
            return {key: Config._substitute_env_vars(value) for key, value in obj.items()}
        elif isinstance(obj, list):
            return [Config._substitute_env_vars(item) for item in obj]
        elif isinstance(obj, str):
            pattern = r"\$\{([^}]+)\}"

            def replace_var(match):
                var_name = match.group(1)
                value = os.environ.get(var_name)
                if value is None:
                    raise ValueError(
                        f"Environment variable '{var_name}' not found "
                        f"(referenced in configuration)"
                    )
                return value

            return re.sub(pattern, replace_var, obj)
        else:
            return obj

    @classmethod
    def from_defaults(cls) -> "Config":
        """Create configuration with default values."""
        return cls()


def load_config(path: Optional[str | Path] = None) -> Config:
    """Load configuration from file or use defaults.

    Args:
        path: Optional path to configuration file. If None, uses defaults.

    Returns:
        Config instance
    """
    if path is None:
        return Config.from_defaults()

    return Config.from_yaml(path)
