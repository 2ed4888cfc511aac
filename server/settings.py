import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

DEFAULT_GEMINI_MODEL = "gemini-1.5-pro"


@dataclass(frozen=True)
class Settings:
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"


def load_settings() -> Settings:
    # .env values never override variables already set in the environment
    load_dotenv()

    origins = os.getenv("DIC_CORS_ORIGINS", "*")
    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
        gemini_model=os.getenv("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL,
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()] or ["*"],
        log_level=(os.getenv("DIC_LOG_LEVEL") or "INFO").upper(),
    )
