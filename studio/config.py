import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()  # loads .env for local dev

@dataclass(frozen=True)
class Settings:
    env: str = os.getenv("ENV", "local")
    service_name: str = os.getenv("SERVICE_NAME", "studio-api")
    worker_id: str = os.getenv("WORKER_ID", "worker-1")
    database_url: str = os.getenv("DATABASE_URL", "")

    # Auth
    jwt_secret: str = os.getenv("STUDIO_JWT_SECRET", "dev-secret-change-in-prod")
    jwt_expire_hours: int = int(os.getenv("STUDIO_JWT_EXPIRE_HOURS", "24"))
    reset_token_ttl_minutes: int = int(os.getenv("RESET_TOKEN_TTL_MINUTES", "60"))
    base_url: str = os.getenv("STUDIO_BASE_URL", "http://127.0.0.1:8000")

    # Project file storage (S3-compatible)
    spaces_region: str = os.getenv("SPACES_REGION", "")
    spaces_bucket: str = os.getenv("SPACES_BUCKET", "")
    spaces_key: str = os.getenv("SPACES_KEY", "")
    spaces_secret: str = os.getenv("SPACES_SECRET", "")

    # Worker
    returns_check_interval_s: int = int(os.getenv("RETURNS_CHECK_INTERVAL_S", "3600"))

settings = Settings()
