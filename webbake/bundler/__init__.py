"""Bundler adapters."""

from webbake.bundler.base import Bundler
from webbake.bundler.esbuild import EsbuildBundler, parse_diagnostics

__all__ = ['Bundler', 'EsbuildBundler', 'parse_diagnostics']
