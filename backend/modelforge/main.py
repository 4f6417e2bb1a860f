from contextlib import AsyncExitStack, asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from modelforge.core.config import settings
from modelforge.core.logging import setup_logging
from modelforge.core.exceptions import (
    ModelForgeException, modelforge_exception_handler, general_exception_handler
)
from modelforge.services.generation import get_provider
from modelforge.services.handoff import HandoffService
from modelforge.services.tracking import JobTracker, PollingPolicy
from modelforge.services.vision import ImageDescriptionService
from modelforge.api.v1.api import api_router

# Set up logging
setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    async with AsyncExitStack() as stack:
        # Startup
        provider = await stack.enter_async_context(get_provider(settings.GENERATION_PROVIDER))
        handoff = await stack.enter_async_context(HandoffService())
        tracker = JobTracker(
            provider,
            PollingPolicy.from_settings(settings),
            max_jobs=settings.MAX_TRACKED_JOBS
        )

        app.state.provider = provider
        app.state.tracker = tracker
        app.state.vision = ImageDescriptionService()
        app.state.handoff = handoff

        yield

        # Shutdown
        await tracker.cancel_all()


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Text and image to 3D model generation with job tracking",
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan
)

# Exception handlers
app.add_exception_handler(ModelForgeException, modelforge_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router, prefix=settings.API_V1_STR)

@app.get("/")
async def root():
    return {"message": "ModelForge API is running"}

@app.get("/health")
async def health_check():
    provider = getattr(app.state, "provider", None)
    return {
        "status": "healthy",
        "provider_configured": bool(provider and provider.is_healthy()),
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("modelforge.main:app", host="0.0.0.0", port=8000, reload=True)
