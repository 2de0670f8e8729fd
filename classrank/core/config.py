from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # Database
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    leaderboards_table: str = "leaderboards"
    badges_table: str = "badges"
    milestones_table: str = "milestones"
    students_table: str = "students"

    # Scoring
    passing_score: float = 60  # percentage
    needs_help_below: float = 60  # percentage
    top_performer_fraction: float = 0.1
    top_performer_minimum: int = 3
    insight_top_fraction: float = 0.1
    insight_struggling_fraction: float = 0.2

    # Optimistic concurrency
    max_mutation_retries: int = 3

    # App
    app_name: str = "ClassRank"
    version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    class Config:
        env_file = ".env"

settings = Settings()
