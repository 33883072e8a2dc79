"""Runtime settings, read from the environment (and ``.env``) once per process."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from inkwell import constants
from inkwell.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Settings:
    openrouter_api_key: str = ""
    openrouter_url: str = constants.OPENROUTER_URL
    model: str = constants.DEFAULT_MODEL
    elevenlabs_api_key: str = ""
    editor_voice_id: str = constants.EDITOR_VOICE_ID
    narrator_voice_id: str = constants.NARRATOR_VOICE_ID
    database_url: str = constants.DEFAULT_DATABASE_URL
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from ``os.environ`` after loading ``.env``.

        Values already present in the environment win over ``.env``.
        """
        load_dotenv()
        env = os.environ
        settings = cls(
            openrouter_api_key=env.get("OPENROUTER_API_KEY", ""),
            openrouter_url=env.get("OPENROUTER_URL", constants.OPENROUTER_URL),
            model=env.get("INKWELL_MODEL", constants.DEFAULT_MODEL),
            elevenlabs_api_key=env.get("ELEVENLABS_API_KEY", ""),
            editor_voice_id=env.get("ELEVENLABS_EDITOR_VOICE", constants.EDITOR_VOICE_ID),
            narrator_voice_id=env.get("ELEVENLABS_NARRATOR_VOICE", constants.NARRATOR_VOICE_ID),
            database_url=env.get("INKWELL_DATABASE_URL", constants.DEFAULT_DATABASE_URL),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
        if not settings.openrouter_api_key:
            logger.warning("[Config] OPENROUTER_API_KEY is not set; chat turns will fail.")
        if not settings.elevenlabs_api_key:
            logger.info("[Config] ELEVENLABS_API_KEY is not set; speech synthesis disabled.")
        return settings

    def require_openrouter_key(self) -> str:
        if not self.openrouter_api_key:
            raise ConfigurationError("OPENROUTER_API_KEY not set")
        return self.openrouter_api_key

    def require_elevenlabs_key(self) -> str:
        if not self.elevenlabs_api_key:
            raise ConfigurationError("ELEVENLABS_API_KEY not set")
        return self.elevenlabs_api_key
