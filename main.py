# main.py
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from auth import auth_router
from broadcast import BroadcastChannel, realtime_router
from config import settings
from database import init_db
from errors import register_exception_handlers
from image_store import CloudinaryImageStore
from router import router
from sms import SemaphoreClient, sms_router

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    app.state.channel = BroadcastChannel(queue_size=settings.subscriber_queue_size)
    app.state.image_store = CloudinaryImageStore.from_settings()
    app.state.sms_gateway = SemaphoreClient.from_settings()
    logger.info("Water billing API ready on port %s", settings.port)
    yield
    logger.info(
        "Shutting down with %s realtime subscriber(s) connected",
        app.state.channel.subscriber_count,
    )


app = FastAPI(title="Water Billing API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)
register_exception_handlers(app)

app.include_router(router, prefix="/api", tags=["billing"])
app.include_router(auth_router, prefix="/api", tags=["users"])
app.include_router(sms_router, prefix="/api", tags=["sms"])
app.include_router(realtime_router, tags=["realtime"])


@app.get("/")
def home():
    return {"message": "Welcome to the Water Billing API"}


if __name__ == "__main__":
    uvicorn.run(app, host=settings.host, port=settings.port)
