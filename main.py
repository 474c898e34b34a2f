# file: main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import configure_logging, get_settings
from app.controllers.admin import router as admin_router
from app.controllers.events import router as events_router
from app.controllers.notify import router as notify_router
from app.controllers.tokens import router as tokens_router
from app.database.connection import init_db
from app.services.firebase_app import build_dispatcher, init_firebase_app


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await init_db()
    # one Firebase app handle per process, shared by every request through app.state
    app.state.firebase_app = init_firebase_app(get_settings())
    app.state.dispatcher = build_dispatcher(app.state.firebase_app, dry_run=get_settings().fcm_dry_run)
    yield


app = FastAPI(title="Order Notifications API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(notify_router, prefix="/api", tags=["notify"])
app.include_router(tokens_router, prefix="/api", tags=["tokens"])
app.include_router(admin_router, prefix="/api/admin", tags=["admin"])
app.include_router(events_router, prefix="/events", tags=["events"])


@app.get("/")
async def root():
    return {"message": "Order Notifications API is running"}
