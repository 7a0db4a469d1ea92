"""
HTML Entry Analyzer

Reads the entry document, collects the relative module scripts in its
<head> as bundler entrypoints, and rewrites the markup once the bundler
has produced output:

    <script type="module" src="./main.ts"></script>    (removed)
    ...
    <script type="module" src="/main.4b1c9e.js"></script></head>   (injected)

External or absolute script URLs are left alone. The parser never raises
on malformed markup; whatever it cannot place is simply not rewritten.
"""

import json
import os
from html import escape
from html.parser import HTMLParser
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from webbake.errors import EntryError
from webbake.models import BuildMessage

RELATIVE_PREFIXES = ('./', '../')


def is_relative_src(src: str) -> bool:
    return src.startswith(RELATIVE_PREFIXES)


class _EntryScanner(HTMLParser):
    """Records offsets of the pieces of markup the rewrite touches."""

    def __init__(self, markup: str, base_dir: str):
        super().__init__(convert_charrefs=True)
        self._markup = markup
        self._base_dir = base_dir
        self._line_starts = [0]
        for i, ch in enumerate(markup):
            if ch == '\n':
                self._line_starts.append(i + 1)

        self.entrypoints: List[str] = []
        self.removals: List[Tuple[int, int]] = []
        self.head_end: Optional[int] = None
        self.body_start: Optional[int] = None
        self.body_open_end: Optional[int] = None

        self._in_head = False
        self._open_script: Optional[int] = None

    def _offset(self) -> int:
        line, col = self.getpos()
        return self._line_starts[line - 1] + col

    def _tag_end(self, start: int) -> int:
        end = self._markup.find('>', start)
        return len(self._markup) if end == -1 else end + 1

    def _module_src(self, attrs: List[Tuple[str, Optional[str]]]) -> Optional[str]:
        values: Dict[str, Optional[str]] = dict(attrs)
        if (values.get('type') or '').strip().lower() != 'module':
            return None
        src = values.get('src')
        if not src or not is_relative_src(src):
            return None
        return src

    def handle_starttag(self, tag, attrs):
        if tag == 'head':
            self._in_head = True
        elif tag == 'body':
            self._in_head = False
            if self.body_start is None:
                start = self._offset()
                self.body_start = start
                self.body_open_end = start + len(self.get_starttag_text() or '')
        elif tag == 'script' and self._in_head:
            src = self._module_src(attrs)
            if src is not None:
                self.entrypoints.append(os.path.abspath(os.path.join(self._base_dir, src)))
                self._open_script = self._offset()

    def handle_startendtag(self, tag, attrs):
        if tag == 'script' and self._in_head:
            src = self._module_src(attrs)
            if src is not None:
                start = self._offset()
                self.entrypoints.append(os.path.abspath(os.path.join(self._base_dir, src)))
                self.removals.append((start, start + len(self.get_starttag_text() or '')))
            return
        super().handle_startendtag(tag, attrs)

    def handle_endtag(self, tag):
        if tag == 'script' and self._open_script is not None:
            self.removals.append((self._open_script, self._tag_end(self._offset())))
            self._open_script = None
        elif tag == 'head':
            self._in_head = False
            if self.head_end is None:
                self.head_end = self._offset()

    def close(self):
        super().close()
        if self._open_script is not None:
            # Unterminated <script>: drop everything that followed it
            self.removals.append((self._open_script, len(self._markup)))
            self._open_script = None


class EntryDocument:
    """
    An analyzed entry document.

    Attributes:
        path: Absolute path of the entry file
        entrypoints: Absolute paths of the relative module scripts, in
            document order
    """

    def __init__(self, path: str, markup: str):
        self.path = path
        self.markup = markup

        scanner = _EntryScanner(markup, os.path.dirname(path))
        scanner.feed(markup)
        scanner.close()

        self.entrypoints: List[str] = scanner.entrypoints
        self._removals = scanner.removals
        self._head_end = scanner.head_end
        self._body_start = scanner.body_start
        self._body_open_end = scanner.body_open_end

    def rewrite(self, scripts: Sequence[str], logs: Sequence[BuildMessage] = ()) -> str:
        """
        Produce the served markup.

        Args:
            scripts: Route paths of entry outputs, injected in this order
                immediately before </head>
            logs: Diagnostics rendered as <pre> blocks at the start of <body>,
                each prepended in turn so the last reported comes first

        Returns:
            Rewritten HTML
        """
        edits: List[Tuple[int, int, str]] = [(start, end, '') for start, end in self._removals]

        tags = ''.join(
            f'<script type="module" src="{escape(path)}"></script>' for path in scripts
        )
        if tags:
            if self._head_end is not None:
                at = self._head_end
            elif self._body_start is not None:
                at = self._body_start
            else:
                at = len(self.markup)
            edits.append((at, at, tags))

        if logs and self._body_open_end is not None:
            blocks = ''.join(
                f'<pre>{escape(json.dumps(message.to_json_dict(), indent=2))}</pre>'
                for message in reversed(logs)
            )
            edits.append((self._body_open_end, self._body_open_end, blocks))

        out = self.markup
        # Apply back to front so earlier offsets stay valid
        for start, end, text in sorted(edits, key=lambda e: (e[0], e[1]), reverse=True):
            out = out[:start] + text + out[end:]
        return out


def load_entry(path: Path) -> EntryDocument:
    """Read and analyze the entry document.

    Raises:
        EntryError: if the file cannot be read or decoded
    """
    try:
        markup = Path(path).read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as e:
        raise EntryError(str(path), str(e)) from e
    return EntryDocument(str(Path(path).resolve()), markup)
