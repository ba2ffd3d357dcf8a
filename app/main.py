from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from app.api.deps import build_services
from app.api.routes import chat, chats
from app.config import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    services = build_services()
    await services.store.open()
    app.state.services = services
    logger.info(
        f"FreeSearch ready: mode={services.orchestrator.mode} "
        f"store={type(services.store).__name__} searxng={settings.searxng_url}"
    )
    yield
    # Shutdown
    await services.store.close()


app = FastAPI(
    title="FreeSearch",
    description="Search-augmented chat over SearXNG and a local OpenAI-compatible model",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes
app.include_router(chat.router)
app.include_router(chats.router)


@app.get("/api/health")
async def health():
    return {"status": "ok", "service": "freesearch"}
