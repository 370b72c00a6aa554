"""Configuration management for the FP16 Demotion Analysis service."""

import os
import tempfile
from typing import Callable, List, Optional
from dataclasses import dataclass, field


def _split_csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _flag(value: str) -> bool:
    return value.strip().lower() == "true"


def _env(name: str, default: Optional[str], cast: Callable = str):
    """Field read from the environment when Config() is built, so a .env loaded at startup applies."""
    def _read():
        value = os.getenv(name, default)
        return value if value is None else cast(value)
    return field(default_factory=_read)


@dataclass
class Config:
    """Central configuration for the pipeline workers and the API server."""

    # External tool (clang + demotion plugin)
    clang_path: str = _env("CLANG_PATH", "clang")
    plugin_path: str = _env("FP16_PLUGIN_PATH", "build/libfp16DemotionPlugin.so")
    plugin_name: str = _env("FP16_PLUGIN_NAME", "fp16-demotion")
    analysis_flag: str = _env("FP16_ANALYSIS_FLAG", "-fprecision-demote=fp16")
    tool_timeout_seconds: float = _env("TOOL_TIMEOUT_SECONDS", "30", float)
    tool_max_output_bytes: int = _env("TOOL_MAX_OUTPUT_BYTES", str(10 * 1024 * 1024), int)

    # Workspace Configuration
    workspace_root: str = _env(
        "WORKSPACE_ROOT", os.path.join(tempfile.gettempdir(), "fp16_workspaces")
    )
    retain_workspaces: bool = _env("RETAIN_WORKSPACES", "false", _flag)

    # Submission Configuration
    max_upload_bytes: int = _env("MAX_UPLOAD_BYTES", str(5 * 1024 * 1024), int)
    allowed_extensions: List[str] = _env("ALLOWED_EXTENSIONS", ".c,.cpp,.cc,.cxx", _split_csv)

    # Server Configuration
    api_host: str = _env("API_HOST", "0.0.0.0")
    api_port: int = _env("API_PORT", "3001", int)
    cors_origins: List[str] = _env("CORS_ORIGINS", "*", _split_csv)

    # Runtime Configuration
    log_level: str = _env("LOG_LEVEL", "INFO")
    runtime_mode: str = _env("RUNTIME_MODE", "development")
    log_file: Optional[str] = _env("LOG_FILE", None)

    def validate(self) -> None:
        """Validate configuration and raise errors for missing required values."""
        required_fields = [
            ("clang_path", self.clang_path),
            ("plugin_path", self.plugin_path),
            ("plugin_name", self.plugin_name),
            ("analysis_flag", self.analysis_flag),
            ("workspace_root", self.workspace_root),
        ]

        missing = [name for name, value in required_fields if not value]
        if missing:
            raise ValueError(f"Missing required configuration fields: {missing}")

        if self.tool_timeout_seconds <= 0:
            raise ValueError("tool_timeout_seconds must be positive")
        if self.tool_max_output_bytes <= 0:
            raise ValueError("tool_max_output_bytes must be positive")
        if self.max_upload_bytes <= 0:
            raise ValueError("max_upload_bytes must be positive")
        if not self.allowed_extensions:
            raise ValueError("allowed_extensions must not be empty")

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.runtime_mode.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.runtime_mode.lower() == "development"
