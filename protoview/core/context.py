"""
context.py -- Provide application context for ProtoView
"""
import threading
import logging
from typing import Any, Optional

from protoview.config import ConfigManager
from protoview.db.manager import DBManager


class ApplicationContext:
    """Process-wide holder for configuration, database manager and repository"""

    _instance = None
    _lock = threading.Lock()

    def __new__(cls, config_path: Optional[str] = None):
        with cls._lock:
            if cls._instance is None:
                cls._instance = super(ApplicationContext, cls).__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self, config_path: Optional[str] = None):
        """Initialize application context

        Args:
            config_path: Path to configuration file; a different path from the
                one already loaded re-initializes the context
        """
        if not getattr(self, '_initialized', False):
            self.logger = logging.getLogger("protoview.context")
            self._load(config_path)
            self._initialized = True
        elif config_path is not None and config_path != self.config_manager.config_path:
            self.logger.info(f"Re-initializing context with new config: {config_path}")
            self._load(config_path)

    def _load(self, config_path: Optional[str]) -> None:
        self.config_manager = ConfigManager(config_path)
        self.logger.info("Configuration initialized")

        self.db_manager = DBManager(self.config_manager.get_db_config())
        self.logger.info("Database manager initialized")
        self._interactions = None

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton so the next construction reloads everything"""
        with cls._lock:
            cls._instance = None

    @property
    def db(self) -> DBManager:
        return self.db_manager

    @property
    def config(self) -> ConfigManager:
        return self.config_manager

    @property
    def interactions(self):
        """Repository for stored prediction records, created on first use"""
        if self._interactions is None:
            from protoview.db.repositories.interaction_repository import InteractionRepository
            storage = self.config_manager.get_storage_config()
            self._interactions = InteractionRepository(
                self.db_manager,
                schema=storage.get('schema', 'protoview'),
                table=storage.get('table', 'prediction_records'),
            )
        return self._interactions

    def update_config(self, section: str, key: str, value: Any) -> None:
        """Update configuration value

        Args:
            section: Configuration section
            key: Configuration key
            value: New value
        """
        self.config_manager.config.setdefault(section, {})[key] = value
        self.logger.debug(f"Updated config {section}.{key} = {value}")
