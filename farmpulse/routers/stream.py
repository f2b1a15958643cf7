# farmpulse/routers/stream.py
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

router = APIRouter()


@router.websocket("/ws")
async def sensor_stream(ws: WebSocket):
    """
    Devices, simulators and dashboards connect here:
    /ws?type=device&deviceId=...&apiKey=...  or  /ws?type=dashboard&animalId=...
    Disconnecting removes the session only; running simulations keep going.
    """
    hub = ws.app.state.services.hub
    session = await hub.connect(ws, ws.query_params)
    if session is None:
        return
    try:
        while True:
            raw = await ws.receive_text()
            await hub.handle_message(session, raw)
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(session)
