"""
Bundler Interface for webbake

Defines the boundary between the build orchestrator and whatever tool
actually bundles JavaScript. The orchestrator only ever sees the
BundleRequest / BundleResult contract; module resolution, code splitting
and minification are the bundler's business.

Key responsibilities of an implementation:
- Bundle every entrypoint for the browser with content-hashed file names
- Report each output's kind (entry, chunk, asset, sourcemap)
- Report which source files contributed to each output (provenance)
- Report diagnostics instead of raising for ordinary build errors
"""

from abc import ABC, abstractmethod

from webbake.models import BundleRequest, BundleResult


class Bundler(ABC):
    """
    Abstract base class for bundler adapters.

    Raising is reserved for "the bundler could not run at all"
    (BundlerError). Syntax errors, unresolved imports and the like come
    back as BundleResult(success=False, logs=[...]).
    """

    name = "bundler"

    @abstractmethod
    async def bundle(self, request: BundleRequest) -> BundleResult:
        """
        Bundle the request's entrypoints.

        Args:
            request: Entrypoints plus the fixed output configuration

        Returns:
            BundleResult with outputs in emission order and diagnostics
        """
        pass
