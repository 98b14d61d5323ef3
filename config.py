import os
from dotenv import load_dotenv

load_dotenv()

# OpenAI API Configuration (structure-detection fallback only)
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
STRUCTURE_MODEL = os.getenv("STRUCTURE_MODEL", "gpt-4o-mini")
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))
# Headings are front-loaded in legal documents; only this prefix is sent
LLM_STRUCTURE_MAX_CHARS = int(os.getenv("LLM_STRUCTURE_MAX_CHARS", "15000"))

# Tokenizer
TOKENIZER_ENCODING = os.getenv("TOKENIZER_ENCODING", "cl100k_base")
CHARS_PER_TOKEN = 4.5  # Legal English estimate, overestimates on purpose

# Chunking Parameters (tokens)
MAX_TOKENS = int(os.getenv("CHUNK_MAX_TOKENS", "512"))  # Hard limit per chunk
TARGET_TOKENS = int(os.getenv("CHUNK_TARGET_TOKENS", "400"))
OVERLAP_TOKENS = int(os.getenv("CHUNK_OVERLAP_TOKENS", "50"))
MIN_CHUNK_TOKENS = int(os.getenv("CHUNK_MIN_TOKENS", "50"))  # Merge below this
SKIP_BOILERPLATE_EMBEDDING = os.getenv("SKIP_BOILERPLATE_EMBEDDING", "true").lower() == "true"

# Text fragments below these floors are not worth their own chunk
GAP_MIN_TOKENS = 10
DEFINITION_PREAMBLE_MIN_TOKENS = 10
CLAUSE_INTRO_MIN_TOKENS = 20
PARENT_INTRO_TOKENS = 100
SPLIT_INTRO_CHARS = 200

# ========================================
# Re-chunking Quality Gate
# ========================================
# Tunable heuristics, not validated against a labeled corpus
CHARS_PER_PAGE = int(os.getenv("CHARS_PER_PAGE", "3000"))
MIN_CHUNK_PAGE_RATIO = float(os.getenv("MIN_CHUNK_PAGE_RATIO", "1.5"))
MIN_PAGES_FOR_RATIO_CHECK = int(os.getenv("MIN_PAGES_FOR_RATIO_CHECK", "2"))
MIN_COVERAGE_RATIO = 0.8  # Below this, structure coverage is logged as poor
