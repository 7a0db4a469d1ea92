"""
webbake Data Types

Defines the data that flows through the build pipeline:
- Artifact: a servable unit (route path, body bytes, content type)
- BundleRequest / BundleResult: the bundler adapter contract
- BuildMessage: structured bundler diagnostics

Artifacts are produced by the bundler adapter or read from the asset
directory and never change once constructed.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Artifact(BaseModel):
    """
    A servable unit of content.

    Identity is the route path, which is unique within a snapshot.
    """
    path: str = Field(..., description="Route path, always starting with '/'")
    body: bytes = Field(..., description="Raw response body")
    content_type: str = Field(..., description="MIME type sent as Content-Type")

    model_config = ConfigDict(frozen=True)

    @field_validator('path')
    @classmethod
    def path_is_route(cls, v: str) -> str:
        if not v.startswith('/'):
            raise ValueError(f"route path must start with '/': {v!r}")
        return v


class OutputKind(str, Enum):
    """What a bundler output is for."""
    ENTRY = "entry"
    CHUNK = "chunk"
    ASSET = "asset"
    SOURCEMAP = "sourcemap"


class SourcePosition(BaseModel):
    """Location of a diagnostic in a source file."""
    file: str
    line: int = 0
    column: int = 0
    line_text: str = ""

    model_config = ConfigDict(frozen=True)


class BuildMessage(BaseModel):
    """One diagnostic reported by the bundler."""
    level: str = Field(default="error", description="'error' or 'warning'")
    message: str
    position: Optional[SourcePosition] = None

    model_config = ConfigDict(frozen=True)

    def to_json_dict(self) -> Dict[str, Any]:
        """Plain dict used when diagnostics are rendered into HTML."""
        return self.model_dump(mode='json', exclude_none=True)


class BundleRequest(BaseModel):
    """Fixed configuration handed to the bundler."""
    entrypoints: List[str] = Field(default_factory=list, description="Absolute paths")
    root: str = Field(..., description="Project root; outputs are named relative to it")
    target: str = "browser"
    naming: str = "[name].[hash]"
    splitting: bool = True
    minify: bool = False
    sourcemap: bool = True

    model_config = ConfigDict(frozen=True)


class BundleOutput(BaseModel):
    """A single file emitted by the bundler."""
    path: str = Field(..., description="Output file name, e.g. 'main.3f2a1c.js'")
    content_type: str
    body: bytes
    kind: OutputKind = OutputKind.CHUNK
    sources: Optional[List[str]] = Field(
        default=None, description="Absolute source files that contributed to this output")

    model_config = ConfigDict(frozen=True)


class BundleResult(BaseModel):
    """What the bundler returns for one invocation."""
    success: bool
    outputs: List[BundleOutput] = Field(default_factory=list)
    logs: List[BuildMessage] = Field(default_factory=list)
