"""Application configuration"""
from pathlib import Path
from pydantic_settings import BaseSettings


def get_data_directory() -> Path:
    """Get the data directory for the SQLite item store (relative to the working dir)."""
    return Path("data")


class Settings(BaseSettings):
    # API settings
    api_port: int = 8000
    api_host: str = "127.0.0.1"
    log_level: str = "INFO"

    # Data paths
    data_dir: Path = get_data_directory()
    db_path: Path = get_data_directory() / "decisions.db"

    # Item store backend: "sqlite" or "memory"
    item_store: str = "sqlite"

    # Bearer tokens are stored as sha256(token + pepper)
    token_pepper: str = ""

    # Decision grouping
    recency_window_days: int = 14  # Candidate lookback and cluster time bound
    max_candidates: int = 200  # Most recently added items read per recompute
    max_group_size: int = 5
    # Token-overlap ratio a candidate title must reach against the seed title.
    # 0 keeps title similarity advisory (computed, never gates membership).
    title_similarity_threshold: float = 0.0

    class Config:
        env_file = ".env"

settings = Settings()

# Ensure data directory exists
settings.data_dir.mkdir(parents=True, exist_ok=True)
