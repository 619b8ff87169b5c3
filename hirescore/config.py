import os

from dotenv import load_dotenv

load_dotenv()

# LLM settings (Groq)
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_API_BASE = os.getenv("GROQ_API_BASE", "https://api.groq.com/openai/v1")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
LLM_TEMPERATURE = 0.2
LLM_MAX_TOKENS = 2000

# Model catalog
MODEL_CACHE_TTL = 10 * 60  # seconds
MODELS_REQUEST_TIMEOUT = 15

# Document services (optional; strategies are skipped when unset)
OCR_SERVICE_URL = os.getenv("OCR_SERVICE_URL")
CONVERSION_SERVICE_URL = os.getenv("CONVERSION_SERVICE_URL")
DOCUMENT_SERVICE_TIMEOUT = int(os.getenv("DOCUMENT_SERVICE_TIMEOUT", "60"))

# Extraction thresholds (characters)
MIN_DIRECT_TEXT_LENGTH = 50
MIN_CONVERSION_TEXT_LENGTH = 50
MIN_MARKUP_TEXT_LENGTH = 100
EMPTY_TEXT_THRESHOLD = 10
PDF_LINE_TOLERANCE = 2.0  # points of vertical drift still treated as one line

# Content validation
MIN_CV_LENGTH = 200
MIN_CV_CATEGORIES = 2

# Batch processing
BATCH_CHUNK_SIZE = int(os.getenv("BATCH_CHUNK_SIZE", "5"))
BATCH_MAX_CONCURRENT_CHUNKS = int(os.getenv("BATCH_MAX_CONCURRENT_CHUNKS", "2"))
SCORING_MAX_ATTEMPTS = int(os.getenv("SCORING_MAX_ATTEMPTS", "3"))
RETRY_BASE_DELAY = float(os.getenv("RETRY_BASE_DELAY", "0.5"))  # seconds, doubles per attempt
RETRY_JITTER = float(os.getenv("RETRY_JITTER", "0.0"))
INTER_GROUP_DELAY = float(os.getenv("INTER_GROUP_DELAY", "0.5"))  # seconds

# Job description fetching
JOB_FETCH_TIMEOUT = 15
JOB_FETCH_MAX_BYTES = 2 * 1024 * 1024
JOB_FETCH_USER_AGENT = "HireScore/1.0"
JOB_MIN_CONTENT_LENGTH = 100
JOB_MAX_CONTENT_LENGTH = 15000
JOB_BLOCKED_HOSTNAMES = ("localhost", "metadata.google.internal", "metadata.goog")
