from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn
from dotenv import load_dotenv

from app.core.config import settings
from app.core.analytics import initialize_posthog, shutdown_posthog
from app.api.v1.router import api_router
from app.core.health import build_health_report, HealthStatus
from app.services.challenge_lifecycle_service import challenge_lifecycle_scheduler

# Load environment variables
load_dotenv()

# Create FastAPI app
app = FastAPI(
    title="HabitCircle API",
    description="Group habit challenges API",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
    redirect_slashes=False,  # Disable automatic redirects to preserve Authorization header
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router, prefix="/api/v1")


# Health check endpoint
@app.get("/health")
async def health_check():
    report = await build_health_report(api_version=app.version)
    status_code = (
        status.HTTP_200_OK
        if report.status != HealthStatus.CRITICAL
        else status.HTTP_503_SERVICE_UNAVAILABLE
    )
    return JSONResponse(content=report.model_dump(mode="json"), status_code=status_code)


# Startup event
@app.on_event("startup")
async def startup_event():
    # Initialize PostHog analytics
    if settings.POSTHOG_API_KEY:
        initialize_posthog()
        print("📈 PostHog analytics active")

    # Hourly challenge status sweep in this process
    if settings.CHALLENGE_SCHEDULER_ENABLED:
        challenge_lifecycle_scheduler.start()
        print("⏱️ Challenge lifecycle scheduler running")

    print("🚀 HabitCircle API started successfully!")


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    await challenge_lifecycle_scheduler.stop()

    # Shutdown PostHog analytics
    if settings.POSTHOG_API_KEY:
        try:
            shutdown_posthog()
            print("📈 PostHog analytics shutdown")
        except Exception as e:
            print(f"⚠️ PostHog shutdown failed: {e}")

    print("👋 HabitCircle API shutting down...")


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
    )
