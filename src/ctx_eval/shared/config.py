"""
Configuration Module - Load and validate evaluation settings.
=============================================================

Loads configuration from:
1. config/settings.yaml (defaults)
2. Environment variables from .env file
3. Environment variables from system

Environment variables override YAML defaults.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file early
load_dotenv()


def _find_project_root() -> Path:
    """Find the project root directory by looking for pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path.cwd()


PROJECT_ROOT = _find_project_root()
CONFIG_DIR = PROJECT_ROOT / "config"
DEFAULT_CONFIG_FILE = CONFIG_DIR / "settings.yaml"


# ─────────────────────────────────────────────────────────────────────────────
# Nested Configuration Models
# ─────────────────────────────────────────────────────────────────────────────


class ThresholdsConfig(BaseModel):
    """Pass/fail bars for the retrieval quality gate."""

    mrr: float = Field(default=0.7, ge=0.0, le=1.0)
    hit_rate: float = Field(default=0.85, ge=0.0, le=1.0)
    precision_at_k: float = Field(default=0.6, ge=0.0, le=1.0)


class EvalConfig(BaseModel):
    """Evaluation settings ([eval] section)."""

    golden_path: str = "~/.ctx/eval"
    history_path: str = "~/.ctx/eval/history"
    default_k: int = Field(default=5, ge=1, le=100)
    thresholds: ThresholdsConfig = Field(default_factory=ThresholdsConfig)
    python_path: str = "python3"
    ragas_model: str = "gpt-4o-mini"
    judge_timeout_seconds: float = Field(default=300.0, gt=0)
    max_output_bytes: int = Field(default=10 * 1024 * 1024, gt=0)

    @property
    def golden_dir(self) -> Path:
        """Golden dataset root with ~ expanded."""
        return Path(self.golden_path).expanduser()

    @property
    def history_dir(self) -> Path:
        """Run history directory with ~ expanded."""
        return Path(self.history_path).expanduser()


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = "INFO"
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    rich_console: bool = True
    file: str = ""


# ─────────────────────────────────────────────────────────────────────────────
# Main Settings Class
# ─────────────────────────────────────────────────────────────────────────────


class Settings(BaseSettings):
    """
    Main application settings.

    Loads from:
    1. config/settings.yaml (defaults)
    2. Environment variables

    Environment variables override YAML settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Judge-model credentials (from environment only)
    openai_api_key: str = Field(default="", validation_alias="OPENAI_API_KEY")
    openai_base_url: str = Field(default="", validation_alias="OPENAI_BASE_URL")

    # Top-level environment overrides
    golden_path: Optional[str] = Field(default=None, validation_alias="CTX_EVAL_GOLDEN_PATH")
    history_path: Optional[str] = Field(default=None, validation_alias="CTX_EVAL_HISTORY_PATH")
    default_k: Optional[int] = Field(default=None, ge=1, le=100, validation_alias="CTX_EVAL_DEFAULT_K")
    python_path: Optional[str] = Field(default=None, validation_alias="CTX_EVAL_PYTHON_PATH")
    ragas_model: Optional[str] = Field(default=None, validation_alias="CTX_EVAL_RAGAS_MODEL")
    log_level: Optional[str] = Field(default=None, validation_alias="LOG_LEVEL")

    # Nested configurations (from YAML)
    eval: EvalConfig = Field(default_factory=EvalConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("openai_api_key", "openai_base_url", mode="before")
    @classmethod
    def validate_credential(cls, v: Any) -> str:
        """Allow missing credentials; judge runs will fail upstream without them."""
        if v is None:
            return ""
        return str(v)

    def get_effective_eval_config(self) -> EvalConfig:
        """Get the [eval] section with environment overrides applied."""
        overrides: dict[str, Any] = {}
        if self.golden_path:
            overrides["golden_path"] = self.golden_path
        if self.history_path:
            overrides["history_path"] = self.history_path
        if self.default_k is not None:
            overrides["default_k"] = self.default_k
        if self.python_path:
            overrides["python_path"] = self.python_path
        if self.ragas_model:
            overrides["ragas_model"] = self.ragas_model
        if not overrides:
            return self.eval
        return self.eval.model_copy(update=overrides)

    def get_judge_env(self) -> dict[str, str]:
        """Credentials forwarded to the judge subprocess (allow-list only)."""
        env: dict[str, str] = {}
        if self.openai_api_key:
            env["OPENAI_API_KEY"] = self.openai_api_key
        if self.openai_base_url:
            env["OPENAI_BASE_URL"] = self.openai_base_url
        return env

    def get_effective_log_level(self) -> str:
        """Get the effective log level (env override or config)."""
        if self.log_level:
            return self.log_level.upper()
        return self.logging.level.upper()


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Load configuration from YAML file."""
    if not config_path.exists():
        return {}

    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
        return data if data else {}


def _create_settings(config_path: Optional[Path] = None) -> Settings:
    """Create settings instance by merging YAML defaults with environment."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_FILE

    yaml_config = _load_yaml_config(config_path)

    # YAML provides defaults, env vars override
    return Settings(**yaml_config)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get the singleton settings instance.

    Returns:
        Settings instance with merged configuration

    Example:
        >>> settings = get_settings()
        >>> print(settings.eval.default_k)
        5
    """
    return _create_settings()


def reload_settings() -> Settings:
    """
    Force reload of settings (clears cache).

    Returns:
        Fresh Settings instance
    """
    get_settings.cache_clear()
    return get_settings()
