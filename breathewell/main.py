# breathewell/main.py
import logging

import socketio
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .db.mongo import init_db_indexes
from .services.socket_manager import SOCKETIO_PATH, sio

# Routers
from .routes.chat import router as chat_router
from .routes.community import router as community_router
from .routes.profile import router as profile_router

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# ---------------------------
# Build FastAPI app
# ---------------------------
fastapi_app = FastAPI(title="BreatheWell Community Backend", version="1.0.0")

# CORS: wide open for now
fastapi_app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@fastapi_app.get("/health")
async def health_check():
    return {"status": "✅ OK", "message": "BreatheWell backend is running."}


# ---------------------------
# Routers
# ---------------------------
fastapi_app.include_router(community_router)
fastapi_app.include_router(chat_router)
fastapi_app.include_router(profile_router)


# ---------------------------
# Startup tasks
# ---------------------------
@fastapi_app.on_event("startup")
async def on_startup():
    try:
        await init_db_indexes()
    except Exception:
        # Don't crash the app if indexes fail; just log it
        logger.exception("Index init error")


# ---------------------------
# Final ASGI app export (Socket.IO wraps FastAPI)
# ---------------------------
app = socketio.ASGIApp(sio, other_asgi_app=fastapi_app, socketio_path=SOCKETIO_PATH.lstrip("/"))
