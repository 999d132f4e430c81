# config.py
"""Runtime settings, read from the environment (and a local .env if present)."""
import os

from dotenv import load_dotenv

load_dotenv()  # Load variables from .env if present

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
HISTORY_FILE = os.getenv("TRACKER_HISTORY_FILE", os.path.join(BASE_DIR, "activities.csv"))
GOALS_FILE = os.getenv("TRACKER_GOALS_FILE", os.path.join(BASE_DIR, "goals.json"))
TIP_MAX_SENTENCES = int(os.getenv("TRACKER_TIP_MAX_SENTENCES", "2"))


def openai_api_key():
    """Read at call time so a key added to the environment later is picked up."""
    return os.getenv("OPENAI_API_KEY")
