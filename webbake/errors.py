"""Exception types raised by webbake."""

from typing import List, Optional

from webbake.models import BuildMessage


class WebbakeError(Exception):
    """Base class for webbake errors."""


class ConfigError(WebbakeError):
    """Settings could not be resolved."""


class EntryError(WebbakeError):
    """The entry HTML document is missing or unreadable."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read entry document {path}: {reason}")


class BundlerError(WebbakeError):
    """The bundler could not be run or its output could not be read."""


class BuildFailed(WebbakeError):
    """The bundler reported failure in production configuration."""

    def __init__(self, logs: Optional[List[BuildMessage]] = None):
        self.logs = list(logs or [])
        count = len(self.logs)
        super().__init__(f"Build failed with {count} diagnostic{'s' if count != 1 else ''}")
