"""
Configuration management for QA Recorder.

Handles environment variables, YAML config files, defaults, and
configuration validation for all QA Recorder components.
"""

import os
from typing import Optional, Dict, Any, Union
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARN", "ERROR"]
VALID_PROVIDERS = ["openai", "ollama", "mixed"]


@dataclass
class Config:
    """Configuration class for QA Recorder with environment variable support."""

    # Environment detection
    ci_mode: bool = field(default=False)

    # Capture surface settings
    headless_mode: Optional[bool] = field(default=None)
    liveness_interval: float = field(default=1.0)

    # Logging configuration
    log_level: str = field(default="INFO")
    log_format: str = field(default="text")

    # Model configuration
    model_provider: str = field(default="mixed")
    openai_api_key: Optional[str] = field(default=None)
    openai_model: str = field(default="gpt-4o-mini")
    ollama_base_url: str = field(default="http://localhost:11434")
    ollama_model: str = field(default="qwen2.5:7b")
    model_timeout: int = field(default=60)
    model_max_retries: int = field(default=3)

    # Synthesis settings
    max_output_tokens: int = field(default=2000)
    prompt_token_budget: int = field(default=3000)
    synthesis_timeout: float = field(default=15.0)

    # Directory paths
    project_root: Path = field(default_factory=lambda: Path.cwd())
    artifacts_dir: Path = field(default_factory=lambda: Path.cwd() / "artifacts")
    logs_dir: Path = field(default_factory=lambda: Path.cwd() / "logs")
    data_dir: Path = field(default_factory=lambda: Path.cwd() / "data")

    def __post_init__(self):
        """Post-initialization validation and setup."""
        for name in ("project_root", "artifacts_dir", "logs_dir", "data_dir"):
            setattr(self, name, Path(getattr(self, name)))

        ci_env = os.getenv("CI", "").lower() == "true"
        if ci_env and self.ci_mode is False:
            self.ci_mode = True

        headless_env = os.getenv("QA_RECORDER_HEADLESS")
        if headless_env is not None:
            self.headless_mode = headless_env.lower() == "true"

        log_env = os.getenv("QA_RECORDER_LOG_LEVEL")
        if log_env:
            self.log_level = log_env
        if self.log_level.upper() not in VALID_LOG_LEVELS:
            self.log_level = "INFO"
        else:
            self.log_level = self.log_level.upper()

        # JSON logs in CI unless explicitly set otherwise
        if self.ci_mode and self.log_format == "text":
            self.log_format = "json"

        provider_env = os.getenv("QA_RECORDER_MODEL_PROVIDER")
        if provider_env:
            self.model_provider = provider_env.lower()
        api_key_env = os.getenv("OPENAI_API_KEY")
        if api_key_env and not self.openai_api_key:
            self.openai_api_key = api_key_env
        ollama_env = os.getenv("OLLAMA_BASE_URL")
        if ollama_env:
            self.ollama_base_url = ollama_env

        timeout_env = os.getenv("QA_RECORDER_SYNTHESIS_TIMEOUT")
        if timeout_env is not None:
            try:
                self.synthesis_timeout = float(timeout_env)
            except ValueError:
                pass

        if self.model_provider not in VALID_PROVIDERS:
            self.model_provider = "mixed"

        self.artifacts_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @property
    def is_ci_mode(self) -> bool:
        """Check if running in CI environment."""
        return self.ci_mode

    @property
    def debug_enabled(self) -> bool:
        """Check if debug logging is enabled."""
        return self.log_level == "DEBUG"

    def get_effective_headless_mode(self) -> bool:
        """Get effective headless mode based on CI and override settings."""
        if self.headless_mode is not None:
            return self.headless_mode
        return self.ci_mode

    def get_log_file_path(self) -> Path:
        """Get the main log file path."""
        return self.logs_dir / "qa-recorder.log"

    def get_debug_log_dir(self) -> Path:
        """Get the debug log directory path."""
        debug_dir = self.logs_dir / "debug"
        debug_dir.mkdir(exist_ok=True)
        return debug_dir

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary for logging."""
        return {
            "ci_mode": self.ci_mode,
            "headless_mode": self.headless_mode,
            "liveness_interval": self.liveness_interval,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "model_provider": self.model_provider,
            "openai_model": self.openai_model,
            "ollama_base_url": self.ollama_base_url,
            "ollama_model": self.ollama_model,
            "max_output_tokens": self.max_output_tokens,
            "prompt_token_budget": self.prompt_token_budget,
            "synthesis_timeout": self.synthesis_timeout,
            "artifacts_dir": str(self.artifacts_dir),
            "logs_dir": str(self.logs_dir),
            "data_dir": str(self.data_dir),
        }

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        ci = os.getenv("CI", "").lower() == "true"
        return cls(
            ci_mode=ci,
            log_format="json" if ci else "text",
            openai_api_key=os.getenv("OPENAI_API_KEY"),
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Config":
        """
        Create configuration from a YAML file.

        Unknown keys are ignored; environment variables still override
        values read from the file.
        """
        from .exceptions import ValidationError

        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ValidationError(
                f"Failed to load configuration file {path}: {e}",
                validation_type="config_file",
            )

        if not isinstance(data, dict):
            raise ValidationError(
                f"Configuration file {path} must contain a mapping",
                validation_type="config_file",
            )

        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def validate(self) -> None:
        """Validate configuration and raise ValidationError if invalid."""
        from .exceptions import ValidationError

        errors = []

        if self.log_level not in VALID_LOG_LEVELS:
            errors.append(
                f"Invalid log level: {self.log_level}. Must be one of {VALID_LOG_LEVELS}"
            )

        if self.model_provider not in VALID_PROVIDERS:
            errors.append(
                f"Invalid model provider: {self.model_provider}. Must be one of {VALID_PROVIDERS}"
            )

        if self.model_provider in ["openai", "mixed"] and not self.openai_api_key:
            errors.append("OpenAI API key is required for OpenAI model usage")

        if self.synthesis_timeout <= 0:
            errors.append("Synthesis timeout must be positive")

        if self.liveness_interval <= 0:
            errors.append("Liveness interval must be positive")

        if self.max_output_tokens <= 0:
            errors.append("Max output tokens must be positive")

        if errors:
            message = "Configuration validation failed: " + "; ".join(errors)
            raise ValidationError(
                message,
                validation_type="config",
                violations=errors,
            )
