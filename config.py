"""Global configuration for the Hermes team assistant."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Discord
DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")

# Claude API - using renamed var so local tooling doesn't pick it up
ANTHROPIC_API_KEY = os.getenv("DISCORD_BOT_CLAUDE_KEY")
CLAUDE_MODEL = os.getenv("CLAUDE_MODEL", "claude-sonnet-4-20250514")

# Supabase (optional - falls back to the local SQLite store)
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Local data
DATA_DIR = Path(os.getenv("LOCALAPPDATA", ".")) / "hermes-assistant"

# Logging
LOG_DIR = DATA_DIR / "logs"
LOG_DIR.mkdir(parents=True, exist_ok=True)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
