"""Content-type detection for assets and bundler outputs."""

import mimetypes

# Ensure proper MIME types regardless of the host's mime.types
mimetypes.add_type('text/javascript', '.js')
mimetypes.add_type('text/javascript', '.mjs')
mimetypes.add_type('text/css', '.css')
mimetypes.add_type('application/wasm', '.wasm')
mimetypes.add_type('application/json', '.json')
mimetypes.add_type('application/json', '.map')
mimetypes.add_type('application/manifest+json', '.webmanifest')
mimetypes.add_type('image/svg+xml', '.svg')
mimetypes.add_type('image/webp', '.webp')
mimetypes.add_type('font/woff2', '.woff2')
mimetypes.add_type('text/yaml', '.yaml')
mimetypes.add_type('text/yaml', '.yml')

DEFAULT_TYPE = 'application/octet-stream'


def guess_type(path: str) -> str:
    """Return the Content-Type for a file name.

    Textual types carry an explicit utf-8 charset, everything unknown is
    served as application/octet-stream.
    """
    mime, _ = mimetypes.guess_type(path, strict=False)
    if mime is None:
        return DEFAULT_TYPE
    if mime.startswith('text/'):
        return f"{mime};charset=utf-8"
    return mime


def is_text(content_type: str) -> bool:
    """True when a body of this type can be stored as text."""
    return content_type.startswith('text/')
