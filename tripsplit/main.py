from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tripsplit.api.v1.api import api_router
from tripsplit.api.v1.errors import tripsplit_error_handler
from tripsplit.core.config import settings
from tripsplit.core.exceptions import TripsplitError
from tripsplit.core.logging import configure_logging
from tripsplit.db.mongo import close_mongo_connection, connect_to_mongo


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    await connect_to_mongo()
    yield
    await close_mongo_connection()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    description=settings.DESCRIPTION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(TripsplitError, tripsplit_error_handler)


@app.get("/")
async def root():
    return {"message": "Welcome to Tripsplit API"}


app.include_router(api_router, prefix=settings.API_V1_STR)
