import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from chathub.config import settings
from chathub.database import create_tables, dispose_engine
from chathub.exceptions import ChatError
from chathub.websocket_manager import manager

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    manager.reset()
    await create_tables()
    logger.info("%s %s started", settings.APP_NAME, settings.VERSION)
    yield
    # присутствие не переживает рестарт процесса
    manager.reset()
    await dispose_engine()
    logger.info("%s stopped", settings.APP_NAME)

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    description="ChatHub real-time chat API",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})

from chathub.api.v1 import messages, friends, websocket

app.include_router(messages.router, prefix="/api/v1/messages", tags=["messages"])
app.include_router(friends.router, prefix="/api/v1/friends", tags=["friends"])
app.include_router(websocket.router, prefix="/api/v1/ws", tags=["websocket"])

@app.get("/")
async def root():
    return {"message": "ChatHub API", "version": settings.VERSION}

@app.get("/health")
async def health():
    return {"status": "ok", "online_users": len(manager.presence)}
