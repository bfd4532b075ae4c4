from pydantic import BaseModel
import os
from pathlib import Path


class Settings(BaseModel):
    # Boundary timing (seconds)
    init_timeout: float = float(os.getenv("INTENTCAD_INIT_TIMEOUT", "10"))
    operation_timeout: float = float(os.getenv("INTENTCAD_OPERATION_TIMEOUT", "30"))

    # Evaluator: process | disabled
    evaluator: str = os.getenv("INTENTCAD_EVALUATOR", "process").lower()
    subdivisions: int = int(os.getenv("INTENTCAD_SUBDIVISIONS", "32"))

    # Caches
    history_limit: int = int(os.getenv("INTENTCAD_HISTORY_LIMIT", "100"))
    validation_cache_ttl: float = float(os.getenv("INTENTCAD_VALIDATION_TTL", "300"))

    log_level: str = os.getenv("INTENTCAD_LOG_LEVEL", "INFO").upper()

    # API
    artifacts_dir: str = os.getenv("INTENTCAD_ARTIFACTS_DIR", "./artifacts")
    cors_origins: list[str] = os.getenv(
        "INTENTCAD_CORS_ORIGINS",
        "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173",
    ).split(",")

    def ensure_artifacts_dir(self) -> Path:
        path = Path(self.artifacts_dir)
        path.mkdir(parents=True, exist_ok=True)
        return path


settings = Settings()
