"""Configuration management with lazy section access."""

from datetime import timedelta
from functools import cached_property
from pathlib import Path
from typing import Optional

from storyloop.models.config import AnalysisConfig, Config, DraftConfig, GapConfig, LLMConfig
from storyloop.services.analysis import AnalysisService, MockAnalysisService
from storyloop.services.draft_persistence import DraftPersistence
from storyloop.services.kv_store import JsonFileKeyValueStore
from storyloop.utils.logging import get_logger


logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "storyloop" / "config.yaml"


class ConfigManager:
    """
    Configuration manager with lazy section access.

    Also builds the services a section describes, so the CLI does not need to
    know how the pieces fit together.

    Example:
        >>> config_mgr = ConfigManager.load_default()
        >>> config_mgr.drafts.ttl_seconds
        3600
    """

    def __init__(self, config: Config):
        self._config = config

    @classmethod
    def load_default(cls) -> "ConfigManager":
        """
        Load ~/.config/storyloop/config.yaml, or defaults when it does not exist.

        Raises:
            PermissionError: If config file has wrong permissions
            ValueError: If config is invalid
        """
        if not DEFAULT_CONFIG_PATH.exists():
            logger.info("config_defaults_used", path=str(DEFAULT_CONFIG_PATH))
            return cls(Config())
        return cls.load_from_path(DEFAULT_CONFIG_PATH)

    @classmethod
    def load_from_path(cls, path: Path) -> "ConfigManager":
        """
        Load configuration from specific path.

        Raises:
            FileNotFoundError: If config file doesn't exist
            PermissionError: If config file has wrong permissions
            ValueError: If config is invalid
        """
        logger.info("config_loading", path=str(path))

        try:
            config = Config.load(path)
            logger.info("config_loaded", path=str(path))
            return cls(config)

        except FileNotFoundError as e:
            logger.error("config_not_found", path=str(path), error=str(e))
            raise

        except PermissionError as e:
            logger.error("config_permission_error", path=str(path), error=str(e))
            raise

        except Exception as e:
            logger.error("config_validation_error", path=str(path), error=str(e))
            raise ValueError(f"Configuration validation failed: {e}") from e

    @property
    def config(self) -> Config:
        return self._config

    @cached_property
    def analysis(self) -> AnalysisConfig:
        return self._config.analysis

    @cached_property
    def llm(self) -> Optional[LLMConfig]:
        return self._config.llm

    @cached_property
    def drafts(self) -> DraftConfig:
        return self._config.drafts

    @cached_property
    def gaps(self) -> GapConfig:
        return self._config.gaps

    def build_analysis_service(self) -> AnalysisService:
        """Create the analysis service selected by ``analysis.provider``."""
        if self.analysis.provider == "llm":
            from storyloop.services.llm_analysis import LLMAnalysisService
            from storyloop.services.llm_client import LLMClient

            logger.info("analysis_service_llm", endpoint=str(self.llm.endpoint), model=self.llm.model)
            return LLMAnalysisService(LLMClient(config=self.llm))

        logger.info("analysis_service_mock", latency=self.analysis.mock_latency_seconds,
                    seed=self.analysis.mock_seed)
        return MockAnalysisService(latency=self.analysis.mock_latency_seconds, seed=self.analysis.mock_seed)

    def build_draft_persistence(self, store_path: Optional[Path] = None) -> DraftPersistence:
        """Draft autosave backed by the JSON file at ``drafts.store_path``."""
        path = Path(store_path or self.drafts.store_path).expanduser()
        return DraftPersistence(
            JsonFileKeyValueStore(path),
            ttl=timedelta(seconds=self.drafts.ttl_seconds),
            key_prefix=self.drafts.key_prefix,
        )
