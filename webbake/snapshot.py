"""
Static Snapshot

Production builds are baked into an EncodedSnapshot: every build output
and every file under the asset directory, grouped as

    {encoding: {content_type: {route_path: payload}}}

where text/* bodies are stored as text ("utf-8") and everything else as
base64. The structure is written to a JSON resource at bake time and
decoded once, lazily, when the production server first needs it.

Route paths are unique across the combined stream; if an asset shares a
route with a build output, the asset (written later) wins.
"""

import base64
import json
import os
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Dict, Iterator, Optional, Tuple

from webbake.build import Build, Output
from webbake.bundler.base import Bundler
from webbake.config import Settings
from webbake.logging import get_logger
from webbake.mime import guess_type, is_text
from webbake.models import Artifact

log = get_logger('assets')


class Encoding(str, Enum):
    """How a payload is stored in the snapshot."""
    TEXT = 'utf-8'
    BASE64 = 'base64'


def select_encoding(content_type: str) -> Encoding:
    return Encoding.TEXT if is_text(content_type) else Encoding.BASE64


def encode_payload(body: bytes, encoding: Encoding) -> str:
    if encoding is Encoding.TEXT:
        # surrogateescape keeps non-UTF-8 bytes in text/* bodies lossless
        return body.decode('utf-8', errors='surrogateescape')
    return base64.b64encode(body).decode('ascii')


def decode_payload(payload: str, encoding: Encoding) -> bytes:
    if encoding is Encoding.TEXT:
        return payload.encode('utf-8', errors='surrogateescape')
    return base64.b64decode(payload)


class EncodedSnapshot:
    """
    Three-level mapping encoding -> content type -> route path -> payload.

    Iteration order carries no meaning; every route appears exactly once.
    """

    def __init__(self, groups: Optional[Dict[Encoding, Dict[str, Dict[str, str]]]] = None):
        self.groups: Dict[Encoding, Dict[str, Dict[str, str]]] = groups or {}
        self._where: Dict[str, Tuple[Encoding, str]] = {
            path: (encoding, content_type)
            for encoding, types in self.groups.items()
            for content_type, routes in types.items()
            for path in routes
        }

    def insert(self, path: str, body: bytes, content_type: str) -> Encoding:
        """Add one artifact, replacing any earlier artifact at the same route."""
        previous = self._where.get(path)
        if previous is not None:
            old_encoding, old_type = previous
            routes = self.groups[old_encoding][old_type]
            del routes[path]
            if not routes:
                del self.groups[old_encoding][old_type]
                if not self.groups[old_encoding]:
                    del self.groups[old_encoding]

        encoding = select_encoding(content_type)
        self.groups.setdefault(encoding, {}).setdefault(content_type, {})[path] = \
            encode_payload(body, encoding)
        self._where[path] = (encoding, content_type)
        return encoding

    def entries(self) -> Iterator[Tuple[Encoding, str, str, str]]:
        """Yield (encoding, content_type, route_path, payload)."""
        for encoding, types in self.groups.items():
            for content_type, routes in types.items():
                for path, payload in routes.items():
                    yield encoding, content_type, path, payload

    def __len__(self) -> int:
        return len(self._where)

    def __contains__(self, path: str) -> bool:
        return path in self._where

    def to_dict(self) -> Dict[str, Dict[str, Dict[str, str]]]:
        return {
            encoding.value: {t: dict(routes) for t, routes in types.items()}
            for encoding, types in self.groups.items()
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Dict[str, Dict[str, str]]]) -> 'EncodedSnapshot':
        """Build from the persisted structure; unknown encodings raise ValueError."""
        groups: Dict[Encoding, Dict[str, Dict[str, str]]] = {}
        for name, types in data.items():
            encoding = Encoding(name)
            groups[encoding] = {t: dict(routes) for t, routes in types.items()}
        return cls(groups)

    def dumps(self) -> str:
        # Plain json: ensure_ascii escapes any surrogate-escaped bytes safely
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def loads(cls, text: str) -> 'EncodedSnapshot':
        return cls.from_dict(json.loads(text))


def walk_assets(root: Path, assets_dir: Path) -> Iterator[Output]:
    """
    Yield every regular file below the asset directory.

    Symlinked directories are followed (each real directory once). Routes
    are "/" + the path relative to the project root.
    """
    if not assets_dir.is_dir():
        return
    seen = set()
    for dirpath, dirnames, filenames in os.walk(assets_dir, followlinks=True):
        real = os.path.realpath(dirpath)
        if real in seen:
            dirnames[:] = []
            continue
        seen.add(real)
        dirnames.sort()
        for name in sorted(filenames):
            path = os.path.join(dirpath, name)
            if not os.path.isfile(path):
                continue
            rel = os.path.relpath(path, root).replace(os.sep, '/')
            with open(path, 'rb') as f:
                body = f.read()
            yield '/' + rel, body, guess_type(name)


async def static_stream(build: Build) -> AsyncIterator[Output]:
    """One production build followed by the asset tree."""
    async for output in build.build_once():
        yield output
    for output in walk_assets(build.settings.root, build.settings.assets_dir):
        yield output


async def encode(settings: Settings, bundler: Bundler) -> EncodedSnapshot:
    """
    Bake the production snapshot.

    Outside production configuration this returns an empty snapshot.

    Raises:
        BuildFailed: the bundler reported failure
    """
    snapshot = EncodedSnapshot()
    if not settings.production:
        return snapshot

    build = Build(settings, bundler)
    async for path, body, content_type in static_stream(build):
        snapshot.insert(path, body, content_type)
        log.debug("[assets] path=%s type=%s", path, content_type)
    return snapshot


def decode(snapshot: EncodedSnapshot) -> Dict[str, Artifact]:
    """Rebuild route -> Artifact from an encoded snapshot."""
    return {
        path: Artifact(path=path, body=decode_payload(payload, encoding), content_type=content_type)
        for encoding, content_type, path, payload in snapshot.entries()
    }


def write_snapshot(snapshot: EncodedSnapshot, path: Path) -> Path:
    """Write the snapshot resource that the production server loads."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + '.tmp')
    tmp.write_text(snapshot.dumps(), encoding='utf-8')
    os.replace(tmp, path)
    return path


def read_snapshot(path: Path) -> EncodedSnapshot:
    """Load a snapshot resource; a missing file is an empty snapshot."""
    path = Path(path)
    if not path.exists():
        log.warning("no snapshot at %s, serving nothing", path)
        return EncodedSnapshot()
    return EncodedSnapshot.loads(path.read_text(encoding='utf-8'))


class StaticSnapshot:
    """
    Decoded snapshot, computed on first access and kept for the process
    lifetime.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._routes: Optional[Dict[str, Artifact]] = None

    @property
    def routes(self) -> Dict[str, Artifact]:
        if self._routes is None:
            self._routes = decode(read_snapshot(self.path))
            log.info("loaded %d routes from %s", len(self._routes), self.path)
        return self._routes
