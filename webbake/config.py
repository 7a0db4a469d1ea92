"""
webbake - Configuration loader.

Settings are read from (lowest to highest priority):
- built-in defaults
- webbake.yaml in the project root
- .env in the project root (never overrides the real environment)
- process environment (WEBBAKE_*; NODE_ENV is honoured for the mode)
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv

from webbake.errors import ConfigError

PROJECT_FILE = 'webbake.yaml'

PRODUCTION = 'production'
DEVELOPMENT = 'development'

DEFAULTS: Dict[str, Any] = {
    'entry': 'index.html',
    'assets': 'public',
    'host': '127.0.0.1',
    'port': 3000,
    'snapshot': '.webbake/snapshot.json',
    'esbuild': 'esbuild',
}


@dataclass(frozen=True)
class Settings:
    """Resolved settings for one process."""
    root: Path
    env: str = DEVELOPMENT
    entry: str = DEFAULTS['entry']
    assets: str = DEFAULTS['assets']
    host: str = DEFAULTS['host']
    port: int = DEFAULTS['port']
    snapshot: str = DEFAULTS['snapshot']
    esbuild: str = DEFAULTS['esbuild']

    @property
    def production(self) -> bool:
        return self.env == PRODUCTION

    @property
    def minify(self) -> bool:
        return self.production

    @property
    def sourcemap(self) -> bool:
        """Linked source maps in development, none in production."""
        return not self.production

    @property
    def asset_prefix(self) -> str:
        """Route prefix under which the asset directory is served."""
        return '/' + self.assets.strip('/')

    @property
    def assets_dir(self) -> Path:
        return self.root / self.assets

    @property
    def snapshot_path(self) -> Path:
        return self.root / self.snapshot


def _read_project_file(root: Path) -> Dict[str, Any]:
    path = root / PROJECT_FILE
    if not path.exists():
        return {}
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping, got {type(data).__name__}")
    unknown = set(data) - set(DEFAULTS)
    if unknown:
        raise ConfigError(f"{path}: unknown settings {', '.join(sorted(unknown))}")
    return data


def _get_int(value: Any, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer, got {value!r}") from None


def _get_env_name(env: Mapping[str, str]) -> str:
    name = (env.get('WEBBAKE_ENV') or env.get('NODE_ENV') or DEVELOPMENT).strip().lower()
    if name in ('prod', PRODUCTION):
        return PRODUCTION
    if name in ('dev', DEVELOPMENT, 'test'):
        return DEVELOPMENT
    raise ConfigError(f"WEBBAKE_ENV must be 'production' or 'development', got {name!r}")


def load_settings(
    root: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> Settings:
    """
    Resolve settings for a project.

    Args:
        root: Project root (default: current working directory)
        env: Environment mapping (default: os.environ after loading .env)
        **overrides: Explicit values (e.g. from the command line); None is ignored

    Returns:
        Settings instance
    """
    root = Path(root or Path.cwd()).resolve()

    if env is None:
        load_dotenv(root / '.env', override=False)
        env = os.environ

    values: Dict[str, Any] = dict(DEFAULTS)
    values.update(_read_project_file(root))

    for key in DEFAULTS:
        env_key = f'WEBBAKE_{key.upper()}'
        if env.get(env_key):
            values[key] = env[env_key]

    unknown = set(overrides) - set(DEFAULTS)
    if unknown:
        raise ConfigError(f"unknown settings {', '.join(sorted(unknown))}")
    values.update({k: v for k, v in overrides.items() if v is not None})
    values['port'] = _get_int(values['port'], 'port')

    return Settings(root=root, env=_get_env_name(env), **values)
