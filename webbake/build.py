"""
Build Orchestrator

One Build owns the dev-mode state for a project: the current entry
document, the route -> Artifact cache and the file watches.

Every rebuild is a full rebuild. build_once() analyzes the entry HTML,
runs the bundler, yields one (route, body, content_type) triple per
bundler output and finally the rewritten entry document at "/".
refresh() consumes that stream into a fresh mapping and swaps it in only
once the stream is exhausted, so readers see either the old or the new
mapping, never a half-built one.

Overlapping rebuilds (two file events in quick succession) are not
serialized; whichever finishes last wins.
"""

import asyncio
import time
from concurrent.futures import Future
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple

from webbake.bundler.base import Bundler
from webbake.config import Settings
from webbake.errors import BuildFailed
from webbake.html_entry import load_entry
from webbake.logging import emit_record, get_logger
from webbake.models import Artifact, BuildMessage, BundleRequest, OutputKind
from webbake.watch import WatchManager

log = get_logger('build')

HTML_TYPE = 'text/html;charset=utf-8'

Output = Tuple[str, bytes, str]
Publisher = Callable[[dict], Awaitable[None]]


def output_route(name: str) -> str:
    """Route path for a bundler output file name."""
    return '/' + Path(name).name


class Build:
    """
    Incremental dev build state.

    Args:
        settings: Resolved project settings
        bundler: Bundler adapter
        main: True when running as the top-level program; only then are
            files watched
        observer: Optional watchdog observer (tests inject a double)
    """

    def __init__(
        self,
        settings: Settings,
        bundler: Bundler,
        main: bool = False,
        observer=None,
    ):
        self.settings = settings
        self.bundler = bundler
        self.entry = settings.entry
        self.cache: Optional[Dict[str, Artifact]] = None
        self.watches = WatchManager(self._on_file_change, enabled=main, observer=observer)
        self.last_logs: List[BuildMessage] = []
        self.last_success = True
        self._publisher: Optional[Publisher] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def attach(self, publisher: Publisher) -> None:
        """Attach a live-client notifier, called after every refresh."""
        self._publisher = publisher

    @property
    def entry_path(self) -> Path:
        return (self.settings.root / self.entry).resolve()

    def _request(self, entrypoints: List[str]) -> BundleRequest:
        return BundleRequest(
            entrypoints=entrypoints,
            root=str(self.settings.root),
            minify=self.settings.minify,
            sourcemap=self.settings.sourcemap,
        )

    async def build_once(self) -> AsyncIterator[Output]:
        """
        Run one full build.

        Yields:
            (route, body, content_type) for every bundler output, then the
            rewritten entry document at "/"

        Raises:
            EntryError: entry document missing or unreadable
            BuildFailed: bundler failure in production configuration
        """
        entry_path = self.entry_path
        self.watches.watch(str(entry_path))
        document = load_entry(entry_path)

        result = await self.bundler.bundle(self._request(document.entrypoints))
        self.last_success = result.success
        self.last_logs = list(result.logs)

        if result.success:
            log.debug("[build] %s entrypoints=%d outputs=%d",
                      time.strftime('%H:%M:%S'), len(document.entrypoints), len(result.outputs))
            for message in result.logs:
                log.warning("[build] %s", _describe(message))
        else:
            if not result.logs:
                log.error("[build] %s failed", time.strftime('%H:%M:%S'))
            for message in result.logs:
                log.error("[build] %s", _describe(message))
                if message.position and message.position.file:
                    self.watches.watch(message.position.file)
            if self.settings.production:
                raise BuildFailed(result.logs)

        scripts: List[str] = []
        for output in result.outputs:
            route = output_route(output.path)
            if output.kind == OutputKind.ENTRY:
                scripts.append(route)
            for source in output.sources or ():
                self.watches.watch(source)
            yield route, output.body, output.content_type

        logs = result.logs if self.settings.production else []
        yield '/', document.rewrite(scripts, logs).encode('utf-8'), HTML_TYPE

    async def refresh(self, entry: Optional[str] = None, rebuild: bool = False) -> Dict[str, Artifact]:
        """
        Return the route -> Artifact mapping, rebuilding when needed.

        A rebuild happens when the entry changes, when `rebuild` is set, or
        when nothing has been built yet. Otherwise the existing mapping is
        returned as-is.
        """
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        if entry and entry != self.entry:
            self.entry = entry
            rebuild = True
        if not rebuild and self.cache is not None:
            return self.cache

        started = time.perf_counter()
        cache: Dict[str, Artifact] = {}
        async for route, body, content_type in self.build_once():
            cache[route] = Artifact(path=route, body=body, content_type=content_type)
        self.cache = cache

        emit_record('build', {
            'entry': self.entry,
            'success': self.last_success,
            'routes': sorted(cache),
            'diagnostics': [m.to_json_dict() for m in self.last_logs],
            'duration_ms': round((time.perf_counter() - started) * 1000, 1),
        })

        if self._publisher is not None:
            await self._publisher({'type': 'build', 'time': time.strftime('%Y-%m-%dT%H:%M:%S')})
        return cache

    def _on_file_change(self, path: str, event_type: str) -> None:
        """Watch callback; runs on the observer thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            log.warning("change to %s ignored: no running event loop", path)
            return
        future = asyncio.run_coroutine_threadsafe(self.refresh(rebuild=True), loop)
        future.add_done_callback(_report_rebuild)


def _report_rebuild(future: Future) -> None:
    try:
        future.result()
    except Exception:
        log.exception("rebuild failed")


def _describe(message: BuildMessage) -> str:
    if message.position is None:
        return message.message
    pos = message.position
    return f"{pos.file}:{pos.line}:{pos.column}: {message.level}: {message.message}"
