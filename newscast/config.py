"""Centralized configuration for the newscast pipeline."""
import os
from dotenv import load_dotenv

load_dotenv()

# --- Model Configuration ---
SMART_MODEL = os.environ.get("MODEL_NAME", "")
SMART_BASE_URL = os.environ.get("LLM_BASE_URL", "http://localhost:8000/v1")
SMART_API_KEY = os.environ.get("LLM_API_KEY", "not-needed")
FAST_MODEL = os.environ.get("FAST_MODEL_NAME", "")
FAST_BASE_URL = os.environ.get("FAST_LLM_BASE_URL", "http://localhost:11434/v1")
FAST_API_KEY = os.environ.get("FAST_LLM_API_KEY", SMART_API_KEY)
# Search-grounded endpoint used by the hybrid discovery tier (returns citations)
GROUNDED_MODEL = os.environ.get("GROUNDED_MODEL_NAME", "")
GROUNDED_BASE_URL = os.environ.get("GROUNDED_LLM_BASE_URL", "")
GROUNDED_API_KEY = os.environ.get("GROUNDED_API_KEY", SMART_API_KEY)
# Pass web_search_options on web-grounded calls (only for endpoints that accept it)
SMART_WEB_SEARCH = os.environ.get("SMART_WEB_SEARCH", "false").lower() in ("1", "true", "yes")

# --- Service URLs ---
SEARXNG_URL = os.environ.get("SEARXNG_URL", "http://localhost:8080")

# --- Timeouts (seconds) ---
LLM_TIMEOUT = float(os.environ.get("LLM_TIMEOUT", "120"))
SEARCH_TIMEOUT = 10.0
SCRAPING_TIMEOUT = 25.0

# --- HTTP ---
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

# --- Search ---
SEARCH_ENGINES = ["google", "bing", "brave"]
SEARCH_RESULTS_PER_QUERY = 5
SCRAPE_TOP_N = int(os.environ.get("SCRAPE_TOP_N", "2"))
MAX_PAGE_CHARS = 4000

# --- Word budget ---
WORDS_PER_MINUTE = 125
WORDS_PER_TOPIC = 300
MIN_DEEP_TOPICS = 1
MAX_DEEP_TOPICS = 3
DEFAULT_TARGET_WORDS = 375
LENGTH_TARGETS = {'short': 800, 'medium': 1500, 'long': 2500}
BODY_SECTIONS = {'short': 3, 'medium': 4, 'long': 5}
DEPTH_MULTIPLIERS = {'deep': 1.5, 'medium': 1.0, 'overview': 0.7}
INTRO_SHARE = 0.15
CONCLUSION_SHARE = 0.15
WORD_COUNT_TOLERANCE = 0.05

# --- History ---
HISTORY_WINDOW = 15
MAX_HISTORY_TOPICS = 10
HISTORY_CONTENT_PREFIX = 1000

# --- Topic discovery ---
DISCOVERY_RECENCY_DAYS = 14
DISCOVERY_QUERY_COUNT = 5
MAX_CANDIDATE_TOPICS = 7
HYBRID_TOP_N = 8

# --- Layered research ---
MAX_FOLLOW_UP_QUERIES = 3
DEEP_LAYER_QUERY_COUNT = 5
INSIGHT_CHAR_LIMITS = {1: 6000, 2: 10000, 3: 15000}
DEFAULT_DEPTH_SCORE = 5

# --- Content generation / validation ---
MIN_CONTENT_CHARS = 100
# "raise" surfaces ContentTooShortError, "concatenate" returns the topic syntheses
SHORT_CONTENT_POLICY = os.environ.get("SHORT_CONTENT_POLICY", "raise")
SIMILARITY_PASS_THRESHOLD = 50
DEFAULT_SIMILARITY_SCORE = 30
DIFFERENTIATION_DRAFT_CHARS = 6000
DEFAULT_ADHERENCE_SCORE = 50
MAX_TITLE_CHARS = 100
MAX_DESCRIPTION_CHARS = 150
