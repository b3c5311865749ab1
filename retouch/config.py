"""Runtime configuration read from the environment."""
from __future__ import annotations

import os

LOG_LEVEL: str = os.getenv("RETOUCH_LOG_LEVEL", "INFO")

# External services
OPENAI_API_KEY: str | None = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL: str | None = os.getenv("OPENAI_BASE_URL")
VISION_MODEL: str = os.getenv("RETOUCH_VISION_MODEL", "gpt-4o")
IMAGE_MODEL: str = os.getenv("RETOUCH_IMAGE_MODEL", "gpt-image-1")
GENERATOR_SIZE: int = int(os.getenv("RETOUCH_GENERATOR_SIZE", "1024"))  # native square output

# Timeouts in seconds; every external call is bounded
GENERATION_TIMEOUT: float = float(os.getenv("RETOUCH_GENERATION_TIMEOUT", "120"))
ANALYSIS_TIMEOUT: float = float(os.getenv("RETOUCH_ANALYSIS_TIMEOUT", "45"))
ADJUST_TIMEOUT: float = float(os.getenv("RETOUCH_ADJUST_TIMEOUT", "30"))

# Unique-constraint retry budget for ledger sequence assignment
SEQUENCE_RETRIES: int = int(os.getenv("RETOUCH_SEQUENCE_RETRIES", "8"))

STORAGE_LOCAL_DIR: str = os.getenv("RETOUCH_STORAGE_LOCAL_DIR", ".local_storage")
