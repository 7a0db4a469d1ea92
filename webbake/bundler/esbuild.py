"""
esbuild adapter.

Runs the esbuild CLI once per build into a throwaway directory and reads
back the emitted files plus the metafile, which supplies output kinds and
per-output provenance. Diagnostics are parsed from esbuild's stderr.
"""

import asyncio
import json
import os
import re
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from webbake.bundler.base import Bundler
from webbake.errors import BundlerError
from webbake.logging import get_logger
from webbake.mime import guess_type
from webbake.models import (
    BuildMessage,
    BundleOutput,
    BundleRequest,
    BundleResult,
    OutputKind,
    SourcePosition,
)

log = get_logger('build')

METAFILE = 'meta.json'
SCRIPT_EXTENSIONS = ('.js', '.mjs')

_HEADER_RE = re.compile(r'^\S*\s*\[(ERROR|WARNING)\]\s+(.*)$')
_LOCATION_RE = re.compile(r'^\s+(\S.*?):(\d+):(\d+):\s*$')
_LINE_TEXT_RE = re.compile(r'^\s*\d+\s*[│|]\s?(.*)$')


def parse_diagnostics(stderr: str, root: str) -> List[BuildMessage]:
    """
    Parse esbuild's human-readable log output.

    Each diagnostic looks like:

        ✘ [ERROR] Could not resolve "./missing"

            src/main.js:1:7:
              1 │ import "./missing"
                ╵        ~~~~~~~~~~~

    Args:
        stderr: esbuild stderr (run with --color=false)
        root: Directory file locations are relative to

    Returns:
        Messages in the order esbuild reported them
    """
    messages: List[BuildMessage] = []
    current: Optional[Dict] = None

    def finish():
        if current is not None:
            messages.append(BuildMessage(**current))

    lines = stderr.splitlines()
    for i, line in enumerate(lines):
        header = _HEADER_RE.match(line)
        if header:
            finish()
            current = {'level': header.group(1).lower(), 'message': header.group(2).strip()}
            continue
        if current is None or current.get('position') is not None:
            continue
        location = _LOCATION_RE.match(line)
        if location:
            line_text = ''
            if i + 1 < len(lines):
                text = _LINE_TEXT_RE.match(lines[i + 1])
                if text:
                    line_text = text.group(1)
            current['position'] = SourcePosition(
                file=os.path.normpath(os.path.join(root, location.group(1))),
                line=int(location.group(2)),
                column=int(location.group(3)),
                line_text=line_text,
            )
    finish()
    return messages


def _output_kind(name: str, meta: Dict) -> OutputKind:
    if name.endswith('.map'):
        return OutputKind.SOURCEMAP
    if meta.get('entryPoint') and name.endswith(SCRIPT_EXTENSIONS):
        return OutputKind.ENTRY
    if name.endswith(SCRIPT_EXTENSIONS):
        return OutputKind.CHUNK
    return OutputKind.ASSET


def _provenance(meta: Dict, root: str) -> Optional[List[str]]:
    inputs = meta.get('inputs') or {}
    sources = [
        os.path.normpath(os.path.join(root, name))
        for name in inputs
        # Skip virtual modules such as "<runtime>" or "(disabled):fs"
        if not name.startswith(('<', '(')) and ':' not in name.split('/', 1)[0]
    ]
    return sources or None


class EsbuildBundler(Bundler):
    """
    Bundler adapter for the esbuild executable.

    Args:
        executable: esbuild binary name or path
    """

    name = "esbuild"

    def __init__(self, executable: str = 'esbuild'):
        self.executable = executable

    def command(self, request: BundleRequest, outdir: str) -> List[str]:
        """Build the esbuild command line for a request."""
        cmd = [
            self.executable,
            *request.entrypoints,
            '--bundle',
            '--format=esm',
            f'--platform={request.target}',
            f'--outdir={outdir}',
            f'--outbase={request.root}',
            f'--entry-names={request.naming}',
            f'--chunk-names={request.naming}',
            f'--asset-names={request.naming}',
            f'--metafile={os.path.join(outdir, METAFILE)}',
            '--log-level=warning',
            '--color=false',
        ]
        if request.splitting:
            cmd.append('--splitting')
        if request.minify:
            cmd.append('--minify')
        if request.sourcemap:
            cmd.append('--sourcemap=linked')
        return cmd

    async def bundle(self, request: BundleRequest) -> BundleResult:
        if not request.entrypoints:
            return BundleResult(success=True)

        with tempfile.TemporaryDirectory(prefix='webbake-') as outdir:
            cmd = self.command(request, outdir)
            log.trace("running %s", ' '.join(cmd))
            try:
                proc = await asyncio.create_subprocess_exec(
                    *cmd,
                    cwd=request.root,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as e:
                raise BundlerError(
                    f"{self.executable} could not be started ({e}). "
                    "Install it with: npm install -g esbuild"
                ) from e
            _, stderr = await proc.communicate()

            logs = parse_diagnostics(stderr.decode('utf-8', errors='replace'), request.root)
            outputs = self._read_outputs(outdir, request.root)
            return BundleResult(success=proc.returncode == 0, outputs=outputs, logs=logs)

    def _read_outputs(self, outdir: str, root: str) -> List[BundleOutput]:
        meta_path = Path(outdir) / METAFILE
        if not meta_path.exists():
            return []
        try:
            meta = json.loads(meta_path.read_text(encoding='utf-8'))
        except ValueError as e:
            raise BundlerError(f"Unreadable esbuild metafile: {e}") from e

        outputs: List[BundleOutput] = []
        for name, info in (meta.get('outputs') or {}).items():
            # Metafile paths are relative to the working directory (root)
            path = Path(os.path.normpath(os.path.join(root, name)))
            if not path.is_file():
                continue
            outputs.append(BundleOutput(
                path=path.name,
                content_type=guess_type(path.name),
                body=path.read_bytes(),
                kind=_output_kind(path.name, info),
                sources=_provenance(info, root),
            ))
        return outputs
