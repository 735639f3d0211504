import os

from dotenv import load_dotenv

load_dotenv()

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")

# LLM configuration
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "auto")
LLM_DEFAULT_TIER = os.getenv("LLM_DEFAULT_TIER", "standard")
LLM_MODEL_FAST = os.getenv("LLM_MODEL_FAST", "")
LLM_MODEL_STANDARD = os.getenv("LLM_MODEL_STANDARD", "")
LLM_MODEL_HIGH = os.getenv("LLM_MODEL_HIGH", "")

# Wall-clock limit for a single gateway call; 0 disables it
GATEWAY_TIMEOUT_SECONDS = float(os.getenv("GATEWAY_TIMEOUT_SECONDS", "0"))

# Local key-value storage
DATABASE_PATH = os.getenv("DATABASE_PATH", "mediremind.db")
PROFILES_STORAGE_KEY = os.getenv("PROFILES_STORAGE_KEY", "medi_profiles_v2")
ACTIVE_PROFILE_STORAGE_KEY = os.getenv("ACTIVE_PROFILE_STORAGE_KEY", "medi_active_profile_id")

DEFAULT_REMINDER_TIME = os.getenv("DEFAULT_REMINDER_TIME", "09:00")

# Connectivity probe
OFFLINE_MODE = os.getenv("OFFLINE_MODE", "false").lower() in ("1", "true", "yes", "on")
CONNECTIVITY_PROBE_URL = os.getenv("CONNECTIVITY_PROBE_URL", "https://www.gstatic.com/generate_204")
CONNECTIVITY_TIMEOUT_SECONDS = float(os.getenv("CONNECTIVITY_TIMEOUT_SECONDS", "3"))
