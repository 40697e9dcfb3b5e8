"""
Configuration and constants for the realtime call bridge.
"""
import os
from dotenv import load_dotenv

load_dotenv()

# =============================
# Server Configuration
# =============================
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 5050))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Public host Twilio dials back into, e.g. "abc123.ngrok-free.app"
DOMAIN = os.getenv("DOMAIN", "")

# =============================
# OpenAI Configuration
# =============================
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_REALTIME_MODEL = os.getenv("OPENAI_REALTIME_MODEL", "gpt-4o-realtime-preview-2024-10-01")
VOICE = os.getenv("VOICE", "alloy")
TEMPERATURE = float(os.getenv("TEMPERATURE", "0.8"))

DEFAULT_INSTRUCTIONS = os.getenv("DEFAULT_INSTRUCTIONS", "You are a helpful AI assistant.")

# Optional first turn; when empty the assistant waits for the caller to speak.
INITIAL_GREETING = os.getenv("INITIAL_GREETING", "")

# =============================
# Twilio Configuration
# =============================
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
PHONE_NUMBER_FROM = os.getenv("PHONE_NUMBER_FROM")

MEDIA_STREAM_PATH = "/media-stream"

# =============================
# Supabase Configuration
# =============================
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
TRANSCRIPTS_TABLE = os.getenv("TRANSCRIPTS_TABLE", "call_transcripts")
UPDATES_TABLE = os.getenv("UPDATES_TABLE", "call_updates")
INSTRUCTIONS_TABLE = os.getenv("INSTRUCTIONS_TABLE", "")
PERSISTENCE_TIMEOUT = float(os.getenv("PERSISTENCE_TIMEOUT", "10"))

# =============================
# Diagnostics
# =============================
LOG_EVENT_TYPES = [
    "error",
    "response.content.done",
    "rate_limits.updated",
    "response.done",
    "input_audio_buffer.committed",
    "input_audio_buffer.speech_stopped",
    "input_audio_buffer.speech_started",
    "session.created",
    "session.updated",
]
SHOW_TIMING_MATH = os.getenv("SHOW_TIMING_MATH", "false").lower() in ("1", "true", "yes")


def validate_config():
    """Fail fast on settings the bridge cannot run without."""
    if not OPENAI_API_KEY:
        raise ValueError("Missing the OpenAI API key. Please set it in the .env file.")
