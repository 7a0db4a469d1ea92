"""
webbake

Incremental web-asset build pipeline: a development server that rebuilds
on source change and serves from memory, and a production bake that packs
every build output and static asset into one snapshot served without I/O.
"""

from webbake.models import Artifact
from webbake.serve import DevContext, dev, static

__all__ = ['Artifact', 'DevContext', 'dev', 'static']
