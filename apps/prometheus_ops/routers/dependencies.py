from fastapi import Request, WebSocket

from ..context import TelemetryContext


def get_context(request: Request) -> TelemetryContext:
    """The TelemetryContext the app was started with."""
    return request.app.state.context


def get_ws_context(websocket: WebSocket) -> TelemetryContext:
    return websocket.app.state.context
