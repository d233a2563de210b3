from pydantic_settings import BaseSettings
from functools import lru_cache
import os
from pathlib import Path

class Settings(BaseSettings):
    # Application
    APP_NAME: str = "ViewSync"
    VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    
    # Server
    HOST: str = "0.0.0.0"
    PORT: int = int(os.getenv("PORT", 8000))
    PUBLIC_BASE_URL: str = "http://localhost:3000"
    
    # Security
    ALLOWED_ORIGINS: list = []  # Will be set dynamically
    MAX_UPLOAD_SIZE_MB: int = 500
    ALLOWED_VIDEO_EXTENSIONS: list = [".mp4", ".mov", ".avi", ".mkv", ".webm"]
    
    # Storage
    BASE_STORAGE_PATH: Path = Path(os.getenv("STORAGE_PATH", "../storage"))
    UPLOAD_DIR: Path = Path("../storage/uploads")
    TEMP_DIR: Path = Path("../storage/temp")

    # Blob transfer
    BLOB_BACKEND: str = "local"  # "local" or "supabase"
    CHUNK_SIZE_MB: int = 5
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    SUPABASE_BUCKET: str = "videos"
    
    # Database
    DATABASE_URL: str = "sqlite:///./viewsync.db"
    DB_ECHO: bool = False

    # Watch tracking
    MERGE_TOLERANCE_SECONDS: float = 1.5
    CHECKPOINT_INTERVAL_SECONDS: float = 10.0
    ANALYTICS_POLL_INTERVAL_SECONDS: float = 2.0
    SESSION_IDLE_TIMEOUT_SECONDS: float = 600.0
    
    # Logging
    LOG_LEVEL: str = "INFO"
    
    class Config:
        env_file = ".env"
        case_sensitive = False
    
    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        
        # Set up storage paths
        self.UPLOAD_DIR = self.BASE_STORAGE_PATH / "uploads"
        self.TEMP_DIR = self.BASE_STORAGE_PATH / "temp"
        
        # Create storage directories
        for path in [self.UPLOAD_DIR, self.TEMP_DIR]:
            path.mkdir(parents=True, exist_ok=True)
        
        # Set CORS origins dynamically
        if self.ENVIRONMENT == "production":
            frontend_url = os.getenv("FRONTEND_URL") or self.PUBLIC_BASE_URL
            origins = []
            if frontend_url:
                # Handle both with and without protocol
                if not frontend_url.startswith("http"):
                    origins.extend([f"https://{frontend_url}", f"http://{frontend_url}"])
                else:
                    origins.append(frontend_url)
            self.ALLOWED_ORIGINS = origins if origins else ["*"]
        else:
            self.ALLOWED_ORIGINS = ["http://localhost:5173", "http://localhost:3000", "http://localhost:8000"]

    @property
    def chunk_size_bytes(self) -> int:
        return self.CHUNK_SIZE_MB * 1024 * 1024

    @property
    def max_upload_size_bytes(self) -> int:
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024


@lru_cache()
def get_settings() -> Settings:
    return Settings()
