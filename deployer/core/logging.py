# deployer/core/logging.py
"""
Logging for the deployer.

Everything logs under the 'deployer' logger. Handlers are attached once by
DeployerLogger.configure(); context passed to log_with_context() is
attached to the record and rendered after the message, or under
"context" when structured output is on.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional, Dict, Any
from datetime import datetime

DEBUG = logging.DEBUG
INFO = logging.INFO
WARNING = logging.WARNING
ERROR = logging.ERROR
CRITICAL = logging.CRITICAL

ROOT_LOGGER_NAME = 'deployer'

CONTEXT_ATTRS = (
    'indexer_id', 'indexer_name', 'mode', 'state', 'pid', 'port', 'workdir',
    'namespace', 'deployment', 'service', 'ready_replicas', 'desired_replicas',
    'operation', 'kind', 'reason', 'error', 'exception_type', 'contract',
    'event', 'network', 'path', 'url', 'status_code', 'resource', 'command',
    'returncode', 'count', 'elapsed',
)


class DeployerFormatter(logging.Formatter):
    def __init__(self, include_context: bool = False, as_json: bool = False):
        self.include_context = include_context
        self.as_json = as_json
        super().__init__()

    def _context(self, record: logging.LogRecord) -> Dict[str, Any]:
        return {
            attr: getattr(record, attr)
            for attr in CONTEXT_ATTRS
            if hasattr(record, attr)
        }

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]

        if self.as_json:
            entry = {
                'timestamp': timestamp,
                'level': record.levelname,
                'logger': record.name,
                'message': record.getMessage(),
            }
            context = self._context(record)
            if context:
                entry['context'] = context
            if record.exc_info:
                entry['exception'] = self.formatException(record.exc_info)
            return json.dumps(entry, separators=(',', ':'), default=str)

        base_msg = f"{timestamp} - {record.name} - {record.levelname} - {record.getMessage()}"
        if record.exc_info:
            base_msg = f"{base_msg}\n{self.formatException(record.exc_info)}"

        if not self.include_context:
            return base_msg

        context_parts = [f"{key}={value}" for key, value in self._context(record).items()]
        if context_parts:
            return f"{base_msg} | {' '.join(context_parts)}"

        return base_msg


class DeployerLogger:
    """Global logging configuration and management"""

    _configured = False
    _log_dir: Optional[Path] = None
    _log_level = logging.INFO
    _console_enabled = True
    _file_enabled = True

    @classmethod
    def configure(cls,
                  log_dir: Optional[Path] = None,
                  log_level: str = "INFO",
                  console_enabled: bool = True,
                  file_enabled: bool = True,
                  structured_format: bool = False) -> None:

        if cls._configured:
            return

        cls._log_dir = log_dir
        cls._log_level = getattr(logging, log_level.upper(), logging.INFO)
        cls._console_enabled = console_enabled
        cls._file_enabled = file_enabled

        if file_enabled and log_dir:
            log_dir.mkdir(parents=True, exist_ok=True)

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        root_logger.setLevel(cls._log_level)

        root_logger.handlers.clear()

        if console_enabled:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(cls._log_level)
            console_handler.setFormatter(
                DeployerFormatter(include_context=True, as_json=structured_format)
            )
            root_logger.addHandler(console_handler)

        if file_enabled and log_dir:
            # Main log file
            file_handler = logging.FileHandler(log_dir / 'deployer.log')
            file_handler.setLevel(cls._log_level)
            file_formatter = DeployerFormatter(include_context=True, as_json=structured_format)
            file_handler.setFormatter(file_formatter)
            root_logger.addHandler(file_handler)

            # Error log file
            error_handler = logging.FileHandler(log_dir / 'deployer_errors.log')
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(file_formatter)
            root_logger.addHandler(error_handler)

        cls._configured = True

    @classmethod
    def reset(cls) -> None:
        """Drop handlers so the next configure() call takes effect"""
        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        for handler in list(root_logger.handlers):
            handler.close()
            root_logger.removeHandler(handler)
        cls._configured = False

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Child of the deployer root logger. Handlers are attached by configure()."""
        if not name.startswith(ROOT_LOGGER_NAME):
            name = f'{ROOT_LOGGER_NAME}.{name}'

        return logging.getLogger(name)


# === Utility Functions ===

def get_class_logger(cls_instance) -> logging.Logger:
    module = cls_instance.__class__.__module__
    class_name = cls_instance.__class__.__name__

    prefix = f'{ROOT_LOGGER_NAME}.'
    if module.startswith(prefix):
        module = module[len(prefix):]

    logger_name = f"{module}.{class_name}"
    return DeployerLogger.get_logger(logger_name)


def log_with_context(logger: logging.Logger, level: int, message: str,
                     exc_info: bool = False, **context) -> None:
    if logger.isEnabledFor(level):
        record = logger.makeRecord(
            logger.name, level, "", 0, message, (), sys.exc_info() if exc_info else None
        )
        for key, value in context.items():
            setattr(record, key, value)
        logger.handle(record)


# === LoggingMixin for Classes ===

class LoggingMixin:
    """Per-class logger named after the module and class, with context-aware log_* helpers"""

    @property
    def logger(self) -> logging.Logger:
        """Get logger for this class"""
        if not hasattr(self, '_logger'):
            self._logger = get_class_logger(self)
        return self._logger

    def log_debug(self, message: str, **context) -> None:
        log_with_context(self.logger, logging.DEBUG, message, **context)

    def log_info(self, message: str, **context) -> None:
        log_with_context(self.logger, logging.INFO, message, **context)

    def log_warning(self, message: str, **context) -> None:
        log_with_context(self.logger, logging.WARNING, message, **context)

    def log_error(self, message: str, exc_info: bool = False, **context) -> None:
        log_with_context(self.logger, logging.ERROR, message, exc_info=exc_info, **context)

    def log_instance_context(self, indexer_id: str, **additional_context) -> Dict[str, Any]:
        context = {'indexer_id': indexer_id}
        context.update(additional_context)
        return context
