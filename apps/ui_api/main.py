from __future__ import annotations
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from typing import Optional
import asyncio, json, threading

from contact_capture.display import SpectrumBoard


def create_app(board: SpectrumBoard, push_interval: float = 0.5) -> FastAPI:
    app = FastAPI(title="Contact Audio Capture")

    @app.get("/contacts")
    def list_contacts():
        return {"contacts": board.snapshot()}

    @app.get("/contacts/{stream_id}")
    def get_contact(stream_id: str):
        panel = board.panel(stream_id)
        if panel is None:
            return JSONResponse(status_code=404, content={"error": "not found"})
        return panel

    @app.websocket("/ws/contacts")
    async def ws_contacts(ws: WebSocket):
        await ws.accept()
        try:
            while True:
                await ws.send_text(json.dumps({"contacts": board.snapshot()}))
                await asyncio.sleep(push_interval)
        except WebSocketDisconnect:
            return

    return app


class UIServer:
    """uvicorn on a daemon thread so the poller keeps the main thread."""
    def __init__(self, app: FastAPI, host: str, port: int) -> None:
        self._app = app
        self._host = host
        self._port = port
        self._server = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        import uvicorn

        config = uvicorn.Config(self._app, host=self._host, port=self._port, log_level="warning")
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(target=self._server.run, name="ui-server", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=2)
            self._thread = None
