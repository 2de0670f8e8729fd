from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from classrank.core.config import settings
from classrank.core.logging_config import configure_logging
from classrank.routers import gamification, leaderboards

configure_logging()

# Create FastAPI instance
app = FastAPI(
    title=settings.app_name,
    description="Leaderboard ranking, statistics, badges and streaks for classroom assignments",
    version=settings.version
)

# CORS middleware for React frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(leaderboards.router, prefix="/leaderboards", tags=["Leaderboards"])
app.include_router(gamification.badges_router, prefix="/badges", tags=["Badges"])
app.include_router(gamification.students_router, prefix="/students", tags=["Students"])

@app.get("/")
async def root():
    return {
        "message": f"Welcome to the {settings.app_name} API",
        "version": settings.version,
        "docs": "/docs",
    }

@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "services": {
            "database": "configured" if settings.supabase_url else "not_configured",
            "ranking": "ready",
        }
    }

if __name__ == "__main__":
    uvicorn.run(
        "classrank.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
