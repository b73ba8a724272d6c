import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from newsfeed.database import Base, engine
from newsfeed.routes import articles, classifier

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup ---
    logger.info("Creating database tables if they don't exist...")
    Base.metadata.create_all(bind=engine)

    yield


app = FastAPI(
    title="Issue News Feed API",
    description="Fetches, classifies and summarizes news on five policy issues.",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(articles.router)
app.include_router(classifier.router)
