"""Application configuration."""

from pathlib import Path
from pydantic_settings import BaseSettings
from functools import lru_cache

BASE_DIR = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # App settings
    app_name: str = "Cigar Band Scanner API"
    debug: bool = False
    
    # CORS - Allow all origins for prototype (restrict in production)
    cors_origins: list[str] = ["*"]
    
    # Upload limits
    max_upload_size_mb: int = 15
    allowed_extensions: set = {"png", "jpg", "jpeg", "webp"}
    min_upload_dimension: int = 100
    
    # Compression before the vision call (keeps the JSON request small)
    max_image_dimension: int = 1600
    jpeg_quality: int = 40  # Camera capture used compress=0.4
    max_payload_mb: float = 4.0  # Base64 payload cap
    
    # Image quality thresholds
    blur_threshold: float = 50.0
    contrast_threshold: float = 20.0
    
    # Vision (feature extraction) service
    vision_api_url: str = "https://vision.googleapis.com/v1/images:annotate"
    vision_api_key: str | None = None
    vision_timeout_seconds: float = 12.0
    vision_max_results: int = 5
    
    # Catalog resolver limits
    brand_candidate_limit: int = 25
    prefix_candidate_limit: int = 10
    prefix_token_count: int = 3
    max_brand_tokens: int = 3
    
    # Catalog store / manual search
    catalog_path: str = str(BASE_DIR / "data" / "cigars.json")
    search_limit: int = 20
    
    # Barcode path
    barcode_cooldown_seconds: float = 3.0
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
