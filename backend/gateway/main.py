import os
import argparse
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import socketio
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from .broadcaster import LiveBroadcaster, create_socket_server
from .client import BridgeClient, ClientFactory
from .config import Settings, load_settings
from .dispatcher import OutboundDispatcher
from .errors import GatewayError
from .models import CredentialStore, MessageStore
from .relay import InboundRelay
from .schemas import SendRequest, Source, Status, WebhookSendRequest
from .session import SessionManager

# Initialize logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

RECENT_LIMIT = 100


def create_app(
    settings: Settings,
    sio: socketio.AsyncServer,
    db=None,
    client_factory: Optional[ClientFactory] = None,
) -> FastAPI:
    # ---- lifecycle ----
    @asynccontextmanager
    async def lifespan(application: FastAPI):
        database = db
        if database is None:
            application.mongodb_client = AsyncIOMotorClient(settings.mongodb_uri)
            database = application.mongodb_client[settings.mongodb_name]

        store = MessageStore(database)
        try:
            await store.setup_indexes()
            logger.info("MongoDB connected and indexes ensured")
        except PyMongoError as e:
            logger.error(f"MongoDB connection failed: {e}")
            raise

        credentials = CredentialStore(database, settings.client_id)
        broadcaster = LiveBroadcaster(sio)
        factory = client_factory or (
            lambda: BridgeClient(settings.bridge_url, settings.client_id, credentials)
        )

        session = SessionManager(factory, broadcaster, credentials, settings.session_reset_delay)
        relay = InboundRelay(store, broadcaster, settings.webhook_targets, settings.webhook_timeout)
        session.on_message(relay.handle)

        application.message_store = store
        application.broadcaster = broadcaster
        application.session = session
        application.relay = relay
        application.dispatcher = OutboundDispatcher(
            session,
            store,
            broadcaster,
            token=settings.webhook_token,
            token_policy=settings.webhook_token_policy,
            country_code=settings.country_code,
        )

        await session.initialize()
        yield

        await session.shutdown()
        if getattr(application, "mongodb_client", None) is not None:
            application.mongodb_client.close()
            logger.info("MongoDB connection closed")

    fastapi_app = FastAPI(title="WhatsApp Gateway", lifespan=lifespan)

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---- errors ----
    @fastapi_app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.message})

    @fastapi_app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"success": False, "error": "Invalid request body"})

    async def handle_send(request: SendRequest, source: Source, token: Optional[str] = None):
        try:
            return await fastapi_app.dispatcher.dispatch(request.number, request.message, source, token)
        except GatewayError as e:
            logger.warning(f"{source.value} rejected: {e.message}")
            raise
        except Exception as e:
            logger.error(f"{source.value} error: {e}")
            raise GatewayError(str(e))

    # ---- endpoints ----
    @fastapi_app.get("/health")
    async def health_check():
        """Health check endpoint for deployment"""
        return {"status": "ok", "timestamp": datetime.utcnow().isoformat()}

    @fastapi_app.post("/webhook/send")
    async def webhook_send(request: WebhookSendRequest):
        """Production webhook sender"""
        message = await handle_send(request, Source.WEBHOOK_PROD, request.token)
        return {
            "success": True,
            "message": f"Message sent ({Source.WEBHOOK_PROD.value})",
            "data": message.to_payload(),
        }

    @fastapi_app.post("/webhook/test")
    async def webhook_test(request: WebhookSendRequest):
        """Sandbox webhook sender"""
        message = await handle_send(request, Source.WEBHOOK_TEST, request.token)
        return {
            "success": True,
            "message": f"Message sent ({Source.WEBHOOK_TEST.value})",
            "data": message.to_payload(),
        }

    @fastapi_app.post("/api/send")
    async def ui_send(request: SendRequest):
        """Manual send from the web UI"""
        await handle_send(request, Source.WEB_UI)
        return {"success": True}

    @fastapi_app.post("/api/clear-logs")
    async def clear_logs():
        logger.info("Clearing chat logs...")
        deleted = await fastapi_app.message_store.clear()
        logger.info(f"Deleted {deleted} message(s)")
        await fastapi_app.broadcaster.publish_status(Status.LOGS_CLEARED)
        return {"success": True}

    @fastapi_app.post("/api/clear-session")
    async def clear_session():
        await fastapi_app.session.clear_session()
        return {"success": True}

    @fastapi_app.get("/api/recent")
    async def recent_messages():
        rows = await fastapi_app.message_store.list_recent(RECENT_LIMIT)
        return JSONResponse(content=rows)

    @fastapi_app.get("/api/status")
    async def session_status():
        return fastapi_app.session.snapshot().model_dump(mode="json")

    if os.path.isdir(settings.static_dir):
        fastapi_app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")

    return fastapi_app


# ---- ASGI app ----
settings = load_settings()
sio = create_socket_server(settings.cors_origins if settings.cors_origins != ["*"] else "*")
fastapi_app = create_app(settings, sio)
socketio_app = socketio.ASGIApp(sio, fastapi_app, socketio_path="/socket.io")
app = socketio_app


# ---- CLI run ----
def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=settings.port)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    uvicorn.run("gateway.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
