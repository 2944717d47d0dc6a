import logging
import secrets
from pathlib import Path

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError

from .config import settings
from .coordinator import RoomCoordinator
from .hub import ConnectionHub
from .logs import setup_logging
from .schemas import JoinRoom, Leaving, RoomCreated, RoomOut, parse_event

logger = logging.getLogger(__name__)

app = FastAPI(title="Duet Signaling Broker")

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

coordinator = RoomCoordinator.from_settings(settings)
hub = ConnectionHub()


@app.on_event("startup")
async def on_startup():
    setup_logging(settings.log_level)


@app.get("/health")
async def health():
    return {"status": "ok"}

# ---------------------- PAGES ----------------------
def _page(name: str) -> FileResponse:
    if not settings.static_dir:
        raise HTTPException(status_code=404, detail="Not found")
    path = Path(settings.static_dir) / name
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Not found")
    return FileResponse(path)

@app.get("/")
async def index():
    return _page("index.html")

@app.get("/room/{room_id}")
async def room_page(room_id: str):
    return _page("chat.html")

# ---------------------- ROOMS ----------------------
@app.get("/api/create-room", response_model=RoomCreated)
async def create_room():
    room_id = secrets.token_urlsafe(settings.room_id_bytes)
    return RoomCreated(room_id=room_id, link=f"/room/{room_id}")

@app.get("/api/rooms/{room_id}", response_model=RoomOut)
async def get_room(room_id: str):
    count = coordinator.occupancy(room_id)
    if count is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return RoomOut(room_id=room_id, user_count=count)

@app.get("/rtc/config")
async def rtc_config():
    ice_servers = []
    if settings.stun_servers:
        for stun in settings.stun_servers.split(","):
            ice_servers.append({"urls": stun.strip()})
    if settings.turn_uri and settings.turn_username and settings.turn_password:
        ice_servers.append({
            "urls": settings.turn_uri,
            "username": settings.turn_username,
            "credential": settings.turn_password,
        })
    return {"iceServers": ice_servers}

# ---------------------- WEBSOCKETS ----------------------
def client_origin(ws: WebSocket) -> str:
    if settings.trust_forwarded_for:
        forwarded = ws.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return ws.client.host if ws.client else "unknown"

# Signaling WS: one socket per participant. Join, relay and leave all go through the coordinator.
@app.websocket("/ws")
async def ws_signaling(ws: WebSocket):
    await ws.accept()
    connection_id = secrets.token_urlsafe(8)
    origin = client_origin(ws)
    hub.add(connection_id, ws)
    logger.info("[+] socket connected: %s from %s", connection_id, origin)

    try:
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            raw = message.get("text")
            if raw is None:
                await ws.send_json({"type": "error", "message": "text frames only"})
                continue
            if len(raw.encode()) > settings.max_frame_bytes:
                await ws.send_json({"type": "error", "message": "frame too large"})
                continue
            try:
                event = parse_event(raw)
            except ValidationError:
                await ws.send_json({"type": "error", "message": "unknown message"})
                continue

            if isinstance(event, JoinRoom):
                result = await coordinator.join(connection_id, event.room_id, event.user_name, event.avatar, origin)
                await hub.deliver(result.deliveries)
            elif isinstance(event, Leaving):
                await hub.deliver(await coordinator.leave(connection_id))
            else:
                await hub.deliver(await coordinator.relay(connection_id, event))
    except WebSocketDisconnect:
        pass
    finally:
        hub.remove(connection_id)
        await hub.deliver(await coordinator.leave(connection_id))
        logger.info("[-] socket disconnected: %s", connection_id)


if settings.static_dir:
    app.mount("/", StaticFiles(directory=settings.static_dir), name="static")


def run() -> None:
    import uvicorn

    uvicorn.run("duet.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
