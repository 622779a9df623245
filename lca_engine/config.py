import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass
class Settings:
    claude_api_key: Optional[str] = None
    claude_model: str = "claude-sonnet-4-5-20250929"
    allocation_tolerance_pct: float = 1.0
    default_eol_region: str = "eu"
    default_study_region: str = "GLO"
    log_level: str = "INFO"
    port: int = 5001

    @classmethod
    def from_env(cls):
        """Build settings from the process environment (after .env is loaded)."""
        return cls(
            claude_api_key=os.getenv("CLAUDE_API_KEY") or None,
            claude_model=os.getenv("CLAUDE_MODEL", cls.claude_model),
            allocation_tolerance_pct=float(os.getenv("ALLOCATION_TOLERANCE_PCT", "1")),
            default_eol_region=os.getenv("DEFAULT_EOL_REGION", "eu").strip().lower(),
            default_study_region=os.getenv("DEFAULT_STUDY_REGION", "GLO").strip().upper(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            port=int(os.getenv("PORT", "5001")),
        )


settings = Settings.from_env()
