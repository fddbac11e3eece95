"""Configuration models for Storyloop."""

from pathlib import Path
from typing import Literal, Optional
import os
import stat

import yaml
from pydantic import BaseModel, Field, HttpUrl, model_validator


class LLMConfig(BaseModel):
    """Configuration for an OpenAI-compatible chat completion endpoint."""

    endpoint: HttpUrl = Field(
        ...,
        description="LLM API endpoint URL (OpenAI or Ollama compatible)"
    )

    api_key: str = Field(
        ...,
        description="API key for authentication"
    )

    model: str = Field(
        ...,
        description="Model identifier (e.g., 'gpt-4o-mini', 'llama3')"
    )

    temperature: float = Field(default=0.4, ge=0.0, le=2.0)

    model_config = {"frozen": True}


class AnalysisConfig(BaseModel):
    """Which analysis/generation service backs the workflow."""

    provider: Literal["mock", "llm"] = Field(
        default="mock",
        description="'mock' is deterministic and offline; 'llm' needs the llm section"
    )

    mock_latency_seconds: float = Field(
        default=0.0,
        ge=0.0,
        description="Simulated service latency for the mock provider"
    )

    mock_seed: int = Field(
        default=7,
        description="Seed for the mock provider's pseudo-random scores"
    )

    model_config = {"frozen": True}


class DraftConfig(BaseModel):
    """Autosave settings for in-progress edits."""

    ttl_seconds: int = Field(
        default=3600,
        ge=1,
        description="Drafts older than this are discarded instead of recovered"
    )

    key_prefix: str = Field(default="draft-", min_length=1)

    store_path: Path = Field(
        default=Path.home() / ".cache" / "storyloop" / "drafts.json",
        description="JSON file backing the draft key-value store"
    )

    clear_on_reset: bool = Field(
        default=False,
        description="Also delete the draft when the workflow is reset"
    )

    model_config = {"frozen": True}


class GapConfig(BaseModel):
    """Gap lifecycle settings."""

    auto_dismiss_seconds: float = Field(
        default=3.0,
        ge=0.0,
        description="Delay between a gap being resolved and its automatic dismissal"
    )

    model_config = {"frozen": True}


class Config(BaseModel):
    """Root configuration for Storyloop."""

    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    llm: Optional[LLMConfig] = Field(default=None, description="Required when analysis.provider is 'llm'")
    drafts: DraftConfig = Field(default_factory=DraftConfig)
    gaps: GapConfig = Field(default_factory=GapConfig)

    @model_validator(mode="after")
    def check_llm_section(self) -> "Config":
        if self.analysis.provider == "llm" and self.llm is None:
            raise ValueError(
                "analysis.provider is 'llm' but no llm section is configured\n"
                "Add llm.endpoint, llm.api_key and llm.model to config.yaml"
            )
        return self

    @classmethod
    def load(cls, path: Path) -> "Config":
        """
        Load configuration from YAML file.

        A file that carries an ``llm`` section holds an API key and must not be
        group/world readable.

        Args:
            path: Path to config.yaml file

        Returns:
            Validated Config instance

        Raises:
            PermissionError: If the file holds an API key and is too open
            FileNotFoundError: If config file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        if not path.exists():
            raise FileNotFoundError(
                f"Configuration file not found at {path}\n\n"
                f"Example:\n\n"
                f"analysis:\n"
                f"  provider: llm\n\n"
                f"llm:\n"
                f"  endpoint: https://api.openai.com/v1\n"
                f"  api_key: YOUR_API_KEY_HERE\n"
                f"  model: gpt-4o-mini\n\n"
                f"drafts:\n"
                f"  ttl_seconds: 3600\n"
            )

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration must be a YAML mapping: {path}")

        if data.get("llm"):
            mode = os.stat(path).st_mode
            if mode & (stat.S_IRWXG | stat.S_IRWXO):
                raise PermissionError(
                    f"Config file has overly permissive permissions: {oct(mode)}\n"
                    f"Run: chmod 600 {path}"
                )

        return cls(**data)

    model_config = {"frozen": True}
