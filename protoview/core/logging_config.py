# protoview/core/logging_config.py
import logging
import os
from datetime import datetime
from typing import Optional, Dict, Any


class LoggingManager:
    """Centralized logging configuration for ProtoView"""

    DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    DEFAULT_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
    ROOT_LOGGER = "protoview"

    @staticmethod
    def configure(
        verbose: bool = False,
        log_file: Optional[str] = None,
        component: str = "protoview",
        log_dir: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None
    ) -> logging.Logger:
        """Configure the protoview logger hierarchy

        Handlers are attached to the 'protoview' logger rather than the root
        logger, and replaced on each call so repeated configuration (tests,
        re-invoked CLI entry points) does not duplicate output.

        Args:
            verbose: Enable debug logging if True
            log_file: Specific log file path (overrides automatic naming)
            component: Component name for the returned logger and log file naming
            log_dir: Directory for automatically named log files
            config: Configuration dictionary that may contain a 'logging' section

        Returns:
            Configured logger for the component
        """
        logging_config = (config or {}).get('logging', {}) or {}

        if verbose:
            log_level = logging.DEBUG
        else:
            log_level = logging.getLevelName(str(logging_config.get('level', 'INFO')).upper())
            if not isinstance(log_level, int):
                log_level = logging.INFO

        log_format = logging_config.get('format', LoggingManager.DEFAULT_FORMAT)
        formatter = logging.Formatter(log_format, LoggingManager.DEFAULT_DATE_FORMAT)

        log_dir = log_dir or logging_config.get('log_dir')
        if not log_file and log_dir:
            os.makedirs(log_dir, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file = os.path.join(log_dir, f"{component}_{timestamp}.log")

        handlers = [logging.StreamHandler()]
        if log_file:
            handlers.append(logging.FileHandler(log_file))

        package_logger = logging.getLogger(LoggingManager.ROOT_LOGGER)
        for handler in list(package_logger.handlers):
            package_logger.removeHandler(handler)
            handler.close()
        for handler in handlers:
            handler.setFormatter(formatter)
            package_logger.addHandler(handler)
        package_logger.setLevel(log_level)
        package_logger.propagate = False

        logger = LoggingManager.get_logger(component)
        logger.info(f"Logging initialized for {component} at level {logging.getLevelName(log_level)}")
        if log_file:
            logger.info(f"Log file: {log_file}")

        return logger

    @staticmethod
    def get_logger(name: str) -> logging.Logger:
        """Get a logger inside the protoview hierarchy

        Args:
            name: Logger name; prefixed with 'protoview.' when not already

        Returns:
            Logger instance
        """
        if name != LoggingManager.ROOT_LOGGER and not name.startswith(LoggingManager.ROOT_LOGGER + "."):
            name = f"{LoggingManager.ROOT_LOGGER}.{name}"
        return logging.getLogger(name)
