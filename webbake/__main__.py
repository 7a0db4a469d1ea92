#!/usr/bin/env python3
"""
webbake command line.

Usage:
    python -m webbake serve [--host HOST] [--port PORT] [--entry FILE]
    python -m webbake bake [--output FILE]
    python -m webbake build

Commands:
    serve   Development server with rebuild-on-change, or the production
            server when WEBBAKE_ENV=production (serves the baked snapshot)
    bake    Production build: writes the snapshot resource
    build   One development build; lists the routes it produced
"""
import argparse
import asyncio
import sys
from pathlib import Path

from webbake.bundler.esbuild import EsbuildBundler
from webbake.config import load_settings
from webbake.errors import BuildFailed, WebbakeError
from webbake.logging import get_logger
from webbake.serve import DevContext, set_dev_context, set_static_snapshot
from webbake.snapshot import StaticSnapshot, encode, write_snapshot

log = get_logger('webbake')


def cmd_serve(args) -> int:
    import uvicorn

    from webbake.server import create_app

    settings = load_settings(host=args.host, port=args.port, entry=args.entry)
    if settings.production:
        snapshot = StaticSnapshot(settings.snapshot_path)
        set_static_snapshot(snapshot)
        app = create_app(snapshot=snapshot)
        log.info("serving snapshot %s", settings.snapshot_path)
    else:
        # Running as the top-level program: watch sources
        context = DevContext(settings, main=True)
        set_dev_context(context)
        app = create_app(dev_context=context)
        log.info("development build of %s", settings.entry)

    print(f"webbake ({settings.env}) on http://{settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="warning")
    return 0


def cmd_bake(args) -> int:
    settings = load_settings()
    output = Path(args.output) if args.output else settings.snapshot_path
    if not settings.production:
        log.warning("WEBBAKE_ENV is not 'production'; writing an empty snapshot")

    try:
        snapshot = asyncio.run(encode(settings, EsbuildBundler(settings.esbuild)))
    except BuildFailed as e:
        log.error("%s; snapshot not written", e)
        return 1

    write_snapshot(snapshot, output)
    print(f"Baked {len(snapshot)} routes -> {output}")
    return 0


def cmd_build(args) -> int:
    settings = load_settings()
    context = DevContext(settings)
    routes = asyncio.run(context.build.refresh())
    for path, artifact in sorted(routes.items()):
        print(f"  {path}  {artifact.content_type}  {len(artifact.body):,} bytes")
    return 0 if context.build.last_success else 1


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="webbake", description="Web asset build pipeline")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the dev or production server")
    serve.add_argument("--host", help="Host to bind to")
    serve.add_argument("--port", type=int, help="Port to serve on")
    serve.add_argument("--entry", help="Entry HTML document")
    serve.set_defaults(func=cmd_serve)

    bake = sub.add_parser("bake", help="Write the production snapshot")
    bake.add_argument("--output", help="Snapshot file (default: WEBBAKE_SNAPSHOT)")
    bake.set_defaults(func=cmd_bake)

    build = sub.add_parser("build", help="Run one development build")
    build.set_defaults(func=cmd_build)

    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except WebbakeError as e:
        log.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
