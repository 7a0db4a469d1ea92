"""
Serving boundaries.

    dev(pathname)  -> Artifact | None     (development)
    static()       -> {route: Artifact}   (production)

Both are backed by a context object constructed once by the serving layer.
get_dev_context() / get_static_snapshot() create the process-wide default
on first use; set_dev_context() / set_static_snapshot() let the server or
tests install their own.
"""

import os
from pathlib import Path
from typing import Dict, Optional

from webbake.build import Build
from webbake.bundler.base import Bundler
from webbake.bundler.esbuild import EsbuildBundler
from webbake.config import Settings, load_settings
from webbake.logging import get_logger
from webbake.mime import guess_type
from webbake.models import Artifact
from webbake.snapshot import StaticSnapshot

log = get_logger('serve')


class DevContext:
    """
    Development serving state: one Build plus the asset fallback.

    Args:
        settings: Project settings
        bundler: Bundler adapter (default: esbuild from settings)
        main: Enable file watching (top-level program only)
        observer: Optional watchdog observer for the watch manager
    """

    def __init__(
        self,
        settings: Settings,
        bundler: Optional[Bundler] = None,
        main: bool = False,
        observer=None,
    ):
        self.settings = settings
        self.build = Build(
            settings,
            bundler or EsbuildBundler(settings.esbuild),
            main=main,
            observer=observer,
        )

    async def dev(self, pathname: str) -> Optional[Artifact]:
        """
        Look up a route, building on first use.

        Falls back to reading the asset directory for paths under the
        asset prefix. Returns None when nothing matches.
        """
        routes = await self.build.refresh(self.settings.entry)
        artifact = routes.get(pathname)
        if artifact is not None:
            return artifact
        if not pathname.startswith(self.settings.asset_prefix):
            return None
        return read_asset(self.settings.root, pathname)


def read_asset(root: Path, pathname: str) -> Optional[Artifact]:
    """Read root + pathname as an Artifact, or None if it is not a file."""
    root = Path(os.path.abspath(root))
    # Security: prevent path traversal. Checked lexically so symlinks below
    # the root are followed, as the production asset walk does.
    file_path = Path(os.path.normpath(root / pathname.lstrip('/')))
    if file_path != root and root not in file_path.parents:
        log.warning("refusing %s: outside project root", pathname)
        return None
    if not file_path.is_file():
        return None
    try:
        body = file_path.read_bytes()
    except OSError:
        return None
    return Artifact(path=pathname, body=body, content_type=guess_type(file_path.name))


_dev_context: Optional[DevContext] = None
_static_snapshot: Optional[StaticSnapshot] = None


def get_dev_context() -> DevContext:
    global _dev_context
    if _dev_context is None:
        _dev_context = DevContext(load_settings())
    return _dev_context


def set_dev_context(context: Optional[DevContext]) -> None:
    global _dev_context
    _dev_context = context


def get_static_snapshot() -> StaticSnapshot:
    global _static_snapshot
    if _static_snapshot is None:
        _static_snapshot = StaticSnapshot(load_settings().snapshot_path)
    return _static_snapshot


def set_static_snapshot(snapshot: Optional[StaticSnapshot]) -> None:
    global _static_snapshot
    _static_snapshot = snapshot


async def dev(pathname: str) -> Optional[Artifact]:
    """Development lookup through the process-wide DevContext."""
    return await get_dev_context().dev(pathname)


def static() -> Dict[str, Artifact]:
    """Production routes, decoded once from the baked snapshot."""
    return get_static_snapshot().routes
