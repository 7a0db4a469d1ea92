"""
webbake Logging

Console logging with per-module levels, plus structured record sinks for
machine-readable build history.

Usage:
    from webbake.logging import get_logger

    log = get_logger('build')
    log.debug("bundling %d entrypoints", len(entrypoints))
    log.error("bundle failed")

    # Structured records (one JSON object per rebuild, etc.)
    from webbake.logging import emit_record
    emit_record('build', {'success': True, 'routes': 4})

Configuration:
    Environment variables:
        WEBBAKE_LOG_LEVEL=DEBUG            # Global default level
        WEBBAKE_LOG_WATCH=DEBUG            # Module-specific level
        WEBBAKE_LOG_DIR=/tmp/webbake-logs  # Where FileSink writes

        # Module-specific structured logging
        WEBBAKE_LOGGING_BUILD_ENABLED=true

    Or programmatically:
        from webbake.logging import configure_logging
        configure_logging(level='DEBUG', modules={'assets': 'INFO'})
"""

import json
import os
import sys
import time
from abc import ABC, abstractmethod
from enum import IntEnum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional


class LogLevel(IntEnum):
    """Log levels matching Python's logging module."""
    TRACE = 5
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50
    OFF = 100


# =============================================================================
# Sink-Based Structured Logging
# =============================================================================

class LogSink(ABC):
    """
    Abstract base class for log record sinks.

    Sinks receive structured log records and write them to their destination.
    """

    @abstractmethod
    def emit(self, module: str, record: Dict[str, Any]) -> None:
        """
        Emit a structured log record.

        Args:
            module: Module name (e.g., 'build', 'watch')
            record: Structured data to log (must be JSON-serializable)
        """
        pass

    @abstractmethod
    def flush(self) -> None:
        """Flush any buffered records."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the sink and release resources."""
        pass

    def __enter__(self) -> 'LogSink':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class FileSink(LogSink):
    """
    Writes structured log records to JSONL files.

    Each module gets its own file in the log directory, one JSON object
    per line.

    Args:
        log_dir: Directory for log files (default: from get_log_dir())
        session_name: Session identifier for file naming (default: timestamp)
    """

    def __init__(
        self,
        log_dir: Optional[str] = None,
        session_name: Optional[str] = None,
    ):
        self._log_dir = Path(log_dir) if log_dir else None
        self._session_name = session_name or time.strftime("%Y%m%d_%H%M%S")
        self._files: Dict[str, Any] = {}  # module -> file handle

    def _ensure_dir(self) -> Path:
        if self._log_dir is None:
            self._log_dir = Path(get_log_dir())
        self._log_dir.mkdir(parents=True, exist_ok=True)
        return self._log_dir

    def _get_file(self, module: str):
        if module not in self._files:
            log_dir = self._ensure_dir()
            path = log_dir / f"{self._session_name}_{module}.jsonl"
            self._files[module] = open(path, 'a', encoding='utf-8')
        return self._files[module]

    def emit(self, module: str, record: Dict[str, Any]) -> None:
        """Write record to the module's JSONL file."""
        f = self._get_file(module)
        if 'wall_time' not in record:
            record = {'wall_time': time.time(), **record}
        f.write(json.dumps(record) + "\n")
        f.flush()

    def flush(self) -> None:
        for f in self._files.values():
            f.flush()

    def close(self) -> None:
        for f in self._files.values():
            f.close()
        self._files.clear()

    @property
    def log_paths(self) -> Dict[str, Path]:
        """Get paths to all log files."""
        log_dir = self._ensure_dir()
        return {
            module: log_dir / f"{self._session_name}_{module}.jsonl"
            for module in self._files
        }


class NullSink(LogSink):
    """No-op sink when structured logging is disabled."""

    def emit(self, module: str, record: Dict[str, Any]) -> None:
        pass

    def flush(self) -> None:
        pass

    def close(self) -> None:
        pass


# Sink registry - active sinks by module
_sinks: Dict[str, LogSink] = {}


def register_sink(module: str, sink: LogSink) -> None:
    """Register a sink for a specific module."""
    _sinks[module] = sink


def get_sink(module: str) -> Optional[LogSink]:
    return _sinks.get(module)


def emit_record(module: str, record: Dict[str, Any]) -> bool:
    """
    Emit a structured log record to the module's sink.

    A sink is created on first use from the module's configuration, so
    modules without `WEBBAKE_LOGGING_<MODULE>_ENABLED` get a NullSink.

    Returns:
        True if a real sink received the record
    """
    sink = _sinks.get(module)
    if sink is None:
        sink = create_sink_for_module(module)
        _sinks[module] = sink
    sink.emit(module, record)
    return not isinstance(sink, NullSink)


def close_all_sinks() -> None:
    """Close all registered sinks."""
    for sink in _sinks.values():
        sink.close()
    _sinks.clear()


def create_sink_for_module(module: str, session_name: Optional[str] = None) -> LogSink:
    """Create a FileSink when the module has structured logging enabled."""
    config = get_module_config(module)
    if not config.get('enabled', False):
        return NullSink()
    return FileSink(log_dir=config.get('dir'), session_name=session_name)


# =============================================================================
# Global configuration
# =============================================================================

_config: Dict[str, Any] = {
    'default_level': LogLevel.INFO,
    'module_levels': {},
    'log_dir': None,
    'modules': {},           # Per-module structured logging settings
}


def get_log_dir() -> str:
    """Get the log directory.

    Priority:
    1. Configured log_dir (WEBBAKE_LOG_DIR)
    2. .webbake/logs under the current working directory
    """
    if _config.get('log_dir'):
        return str(Path(_config['log_dir']).expanduser())
    return str(Path.cwd() / '.webbake' / 'logs')


def get_module_config(module: str) -> Dict[str, Any]:
    """Get structured logging settings for a module.

    WEBBAKE_LOGGING_BUILD_ENABLED=true maps to {'enabled': True}.
    """
    return _config.get('modules', {}).get(module.lower(), {})


def _set_nested(d: Dict, keys: list, value: Any) -> None:
    """Set a value in a nested dict, creating intermediate dicts as needed."""
    for key in keys[:-1]:
        d = d.setdefault(key, {})
    d[keys[-1]] = value


def _parse_env_value(value: str) -> Any:
    lower = value.lower()
    if lower in ('true', '1', 'yes', 'on'):
        return True
    if lower in ('false', '0', 'no', 'off'):
        return False
    try:
        return int(value)
    except ValueError:
        pass
    return value


def _format_message(module: str, level: str, msg: str) -> str:
    return f"[{module}] {level}: {msg}"


def _level_from_string(level_str: str) -> LogLevel:
    """Convert string to LogLevel."""
    mapping = {
        'TRACE': LogLevel.TRACE,
        'DEBUG': LogLevel.DEBUG,
        'INFO': LogLevel.INFO,
        'WARNING': LogLevel.WARNING,
        'WARN': LogLevel.WARNING,
        'ERROR': LogLevel.ERROR,
        'CRITICAL': LogLevel.CRITICAL,
        'OFF': LogLevel.OFF,
    }
    return mapping.get(level_str.upper(), LogLevel.INFO)


def configure_logging(
    level: str = 'INFO',
    modules: Optional[Dict[str, str]] = None,
) -> None:
    """
    Configure the logging system.

    Args:
        level: Default log level for all modules
        modules: Dict of module_name -> level for per-module configuration
    """
    _config['default_level'] = _level_from_string(level)

    if modules:
        for mod, mod_level in modules.items():
            _config['module_levels'][mod] = _level_from_string(mod_level)


def _load_env_config() -> None:
    """Load configuration from environment variables.

    Supports two prefixes:
    - WEBBAKE_LOG_*: Log levels (WEBBAKE_LOG_WATCH=DEBUG)
    - WEBBAKE_LOGGING_*: Structured record settings
      (WEBBAKE_LOGGING_BUILD_ENABLED=true)
    """
    if 'WEBBAKE_LOG_LEVEL' in os.environ:
        _config['default_level'] = _level_from_string(os.environ['WEBBAKE_LOG_LEVEL'])

    if 'WEBBAKE_LOG_DIR' in os.environ:
        _config['log_dir'] = os.environ['WEBBAKE_LOG_DIR']

    reserved = ('WEBBAKE_LOG_LEVEL', 'WEBBAKE_LOG_DIR')
    for key, value in os.environ.items():
        if key.startswith('WEBBAKE_LOG_') and key not in reserved:
            module_name = key[len('WEBBAKE_LOG_'):].lower()
            _config['module_levels'][module_name] = _level_from_string(value)

    for key, value in os.environ.items():
        if key.startswith('WEBBAKE_LOGGING_'):
            parts = key[len('WEBBAKE_LOGGING_'):].lower().split('_')
            if len(parts) >= 2:
                module = parts[0]
                _set_nested(
                    _config['modules'].setdefault(module, {}),
                    parts[1:],
                    _parse_env_value(value),
                )


# Load env config on import
_load_env_config()


class WebbakeLogger:
    """
    Logger for a specific module.

    Messages go to stderr so that `build` command output on stdout stays
    clean.
    """

    def __init__(self, module: str):
        self.module = module
        self._module_key = module.lower().replace('.', '_').replace('/', '_')

    @property
    def level(self) -> LogLevel:
        """Get effective log level for this module."""
        if self._module_key in _config['module_levels']:
            return _config['module_levels'][self._module_key]
        return _config['default_level']

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level >= self.level

    def _log(self, level: LogLevel, level_name: str, msg: str, *args) -> None:
        if not self.is_enabled_for(level):
            return

        if args:
            try:
                msg = msg % args
            except (TypeError, ValueError):
                msg = f"{msg} {args}"

        print(_format_message(self.module, level_name, msg), file=sys.stderr)

    def trace(self, msg: str, *args) -> None:
        """Log at TRACE level (very verbose)."""
        self._log(LogLevel.TRACE, 'TRACE', msg, *args)

    def debug(self, msg: str, *args) -> None:
        self._log(LogLevel.DEBUG, 'DEBUG', msg, *args)

    def info(self, msg: str, *args) -> None:
        self._log(LogLevel.INFO, 'INFO', msg, *args)

    def warning(self, msg: str, *args) -> None:
        self._log(LogLevel.WARNING, 'WARN', msg, *args)

    def error(self, msg: str, *args) -> None:
        self._log(LogLevel.ERROR, 'ERROR', msg, *args)

    def exception(self, msg: str, *args, exc_info: bool = True) -> None:
        """
        Log an exception with traceback.

        Args:
            msg: Message describing what failed
            exc_info: If True, include current exception traceback
        """
        import traceback

        self._log(LogLevel.ERROR, 'ERROR', msg, *args)

        if exc_info:
            tb = traceback.format_exc()
            if tb and tb.strip() != 'NoneType: None':
                for line in tb.strip().split('\n'):
                    self._log(LogLevel.ERROR, 'TRACE', line)


@lru_cache(maxsize=64)
def get_logger(module: str) -> WebbakeLogger:
    """
    Get a logger for the specified module.

    Loggers are cached, so calling get_logger('foo') multiple times
    returns the same logger instance.
    """
    return WebbakeLogger(module)


def disable_logging() -> None:
    """Disable all console logging."""
    _config['default_level'] = LogLevel.OFF
