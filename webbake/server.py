"""
FastAPI listener for webbake.

Every GET is dispatched to the baked snapshot (production) or to the dev
build (development); a miss is a plain-text 404 "Not Found". In
development, browsers connected to the /__webbake websocket receive a
{"type": "build"} message after every rebuild.
"""

import json
from typing import List, Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import PlainTextResponse, Response

from webbake.logging import get_logger
from webbake.models import Artifact
from webbake.serve import DevContext
from webbake.snapshot import StaticSnapshot

log = get_logger('server')

LIVE_PATH = '/__webbake'


class ConnectionManager:
    """Manages WebSocket connections for rebuild notifications."""

    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.append(websocket)
        log.debug("websocket connected, total=%d", len(self.active_connections))

    def disconnect(self, websocket: WebSocket):
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)
        log.debug("websocket disconnected, total=%d", len(self.active_connections))

    async def broadcast(self, message: dict):
        """Send message to all connected clients."""
        if not self.active_connections:
            return

        message_json = json.dumps(message)
        disconnected = []

        for connection in self.active_connections:
            try:
                await connection.send_text(message_json)
            except Exception as e:
                log.warning("failed to send to websocket: %s", e)
                disconnected.append(connection)

        for conn in disconnected:
            self.disconnect(conn)


def _respond(artifact: Artifact) -> Response:
    return Response(content=artifact.body, headers={'Content-Type': artifact.content_type})


def not_found() -> PlainTextResponse:
    return PlainTextResponse('Not Found', status_code=404)


def create_app(
    dev_context: Optional[DevContext] = None,
    snapshot: Optional[StaticSnapshot] = None,
) -> FastAPI:
    """
    Create the application.

    Exactly one of dev_context (development) or snapshot (production)
    should be given.
    """
    app = FastAPI(title="webbake", docs_url=None, redoc_url=None, openapi_url=None)
    manager = ConnectionManager()
    app.state.connections = manager

    if dev_context is not None:
        dev_context.build.attach(manager.broadcast)

        @app.websocket(LIVE_PATH)
        async def live(websocket: WebSocket):
            await manager.connect(websocket)
            try:
                while True:
                    await websocket.receive_text()
            except WebSocketDisconnect:
                manager.disconnect(websocket)

    @app.get('/{path:path}')
    async def dispatch(request: Request):
        # request.url.path never includes the query string
        pathname = request.url.path
        if snapshot is not None:
            artifact = snapshot.routes.get(pathname)
        elif dev_context is not None:
            artifact = await dev_context.dev(pathname)
        else:
            artifact = None
        if artifact is None:
            return not_found()
        return _respond(artifact)

    return app
