from typing import List
from fastapi import WebSocket

class ConnectionManager:
    def __init__(self):
        self.report_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.report_connections.append(websocket)

    def disconnect(self, websocket: WebSocket):
        if websocket in self.report_connections:
            self.report_connections.remove(websocket)

    async def broadcast(self, message: dict):
        for connection in list(self.report_connections):
            try:
                await connection.send_json(message)
            except RuntimeError:
                # Socket already closed on the client side
                self.disconnect(connection)

manager = ConnectionManager()
