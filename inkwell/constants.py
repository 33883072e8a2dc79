"""Centralized constants for the Inkwell service.

All magic numbers and fixed identifiers should be defined here for easy maintenance.
"""

# Model provider
OPENROUTER_URL: str = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_MODEL: str = "anthropic/claude-sonnet-4-5"
CHAT_MAX_TOKENS: int = 4096
SUMMARY_MAX_TOKENS: int = 512
MODEL_CONTEXT_BUDGET: int = 200_000  # reported in the per-turn stats frame
CHARS_PER_TOKEN: float = 3.5  # rough estimate used for stats only
PROVIDER_TIMEOUT: float = 120.0

# Speech synthesis (ElevenLabs)
ELEVENLABS_URL: str = "https://api.elevenlabs.io/v1/text-to-speech"
ELEVENLABS_MODEL_ID: str = "eleven_monolingual_v1"
EDITOR_VOICE_ID: str = "21m00Tcm4TlvDq8ikWAM"  # Rachel
NARRATOR_VOICE_ID: str = "pNInz6obpgDQGcFmaJgB"  # Adam
TTS_TIMEOUT: float = 30.0

# Read-aloud chunking (characters)
READ_ALOUD_MAX_CHUNK: int = 600
READ_ALOUD_MIN_BREAK: int = 200

# Project note keys
NOTE_USER_INSTRUCTIONS: str = "user_instructions"
NOTE_AI_INSTRUCTIONS: str = "ai_instructions"
NOTE_LAST_FEEDBACK_REMINDER: str = "last_feedback_reminder"

# Defaults
DEFAULT_BOOK_TITLE: str = "My Book"
DEFAULT_CHAPTER_TITLE: str = "Introduction"
DEFAULT_SESSION_MODE: str = "conversation"
DEFAULT_NEW_SESSION_SUMMARY: str = "Session ended by AI."
DEFAULT_DATABASE_URL: str = "sqlite:///inkwell.db"
