from contextlib import asynccontextmanager

from fastapi import FastAPI

from marketchat.database.connection import close_mongo_connection, connect_to_mongo, get_database
from marketchat.errors import register_error_handlers
from marketchat.logging_config import setup_logging
from marketchat.repositories.chat_repository import ChatRepository
from marketchat.repositories.message_repository import MessageRepository
from marketchat.routers.conversations import router as conversations_router
from marketchat.routers.messages import router as messages_router
from marketchat.routers.users import router as users_router
from marketchat.utils.realtime_bus import close_bus, get_bus


@asynccontextmanager
async def lifespan(app: FastAPI):

    setup_logging()
    await connect_to_mongo()
    db = get_database()
    await MessageRepository(db).ensure_indexes()
    await ChatRepository(db).ensure_indexes()
    await get_bus()
    try:
        yield
    finally:
        await close_bus()
        await close_mongo_connection()


app = FastAPI(title="Marketplace messaging", lifespan=lifespan)

register_error_handlers(app)

app.include_router(messages_router)
app.include_router(conversations_router)
app.include_router(users_router)


@app.get("/")
async def root():

    db = get_database()
    collections = await db.list_collection_names()
    return {"message": "Connected to MongoDB!", "collections": collections}
