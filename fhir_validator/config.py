import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./fhir_validation.db")
    PHI_ENCRYPTION_KEY: str = os.getenv("PHI_ENCRYPTION_KEY", "")
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    PROFILE_DIR: str = os.getenv("PROFILE_DIR", "")
    VALIDATION_WORKERS: int = int(os.getenv("VALIDATION_WORKERS", "1"))
    REMOTE_VALIDATION_URL: str = os.getenv("REMOTE_VALIDATION_URL", "")
    REMOTE_TIMEOUT: float = float(os.getenv("REMOTE_TIMEOUT", "30"))


settings = Settings()
