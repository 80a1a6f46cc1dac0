"""
SOP Assistant Configuration Module
Centralized configuration for the retrieval engine and its helpers.
"""

import os
from pathlib import Path

# Debug Mode Configuration
DEBUG_MODE = os.environ.get('DEBUG', 'false').lower() == 'true'

# Application Paths
APP_NAME = "SOPAssistant"
APPDATA_DIR = Path(
    os.environ.get(
        'SOP_ASSISTANT_HOME',
        Path(os.environ.get('APPDATA', os.path.expanduser('~/.config'))) / APP_NAME,
    )
)
LOGS_DIR = APPDATA_DIR / "logs"

# Packaged data files (pattern dictionaries, sample corpus)
DATA_DIR = Path(__file__).parent / "data"
QUERY_PATTERNS_FILE = DATA_DIR / "query_patterns.yaml"
SAMPLE_CHUNKS_FILE = DATA_DIR / "sample_chunks.json"

# Logging Configuration
LOG_FILE = LOGS_DIR / "processing.log"
DEBUG_LOG_FILE = LOGS_DIR / "debug_flow.txt"
LOG_FORMAT = "[%(levelname)s %(asctime)s] %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"

# ============================================================================
# Tokenization
# ============================================================================

# Tokens of this length or shorter are dropped ("a", "to", "oh", "md", ...)
MIN_TOKEN_LENGTH = 3

# Function words removed from both chunk text and queries.
# Shared by every index and by query keyword extraction so the corpus and
# query vocabularies stay identical.
STOPWORDS = frozenset({
    'the', 'a', 'an', 'and', 'or', 'but', 'in', 'on', 'at', 'to', 'for',
    'of', 'with', 'by', 'is', 'are', 'was', 'were', 'be', 'been', 'have',
    'has', 'had', 'do', 'does', 'did', 'will', 'would', 'could', 'should',
    'what', 'when', 'where', 'who', 'why', 'how', 'which',
})

# ============================================================================
# Query Analysis
# ============================================================================

QUERY_KEYWORD_LIMIT = 10        # Keywords kept per query (original order)
QUERY_BASE_CONFIDENCE = 0.5     # Confidence with nothing recognized
QUERY_STATE_CONFIDENCE = 0.2    # Added when a state is found
QUERY_ORDER_TYPE_CONFIDENCE = 0.2  # Added when an order type is found
QUERY_TOPIC_CONFIDENCE = 0.1    # Added per topic found...
QUERY_TOPIC_CONFIDENCE_MAX_TOPICS = 3  # ...for at most this many topics

# ============================================================================
# Indexing
# ============================================================================

# Highest-weight TF-IDF terms cached per chunk (diagnostics only)
TOP_TERMS_PER_CHUNK = 20

# ============================================================================
# Ranking / Fusion
# ============================================================================

# "weighted" = fixed-weight linear combination
# "rrf"      = reciprocal-rank fusion over each index's own ranking
DEFAULT_FUSION_STRATEGY = "weighted"

# Weights for the linear combination. The first three sum to 1.0; the image
# weight is a bonus on top for chunks whose images match the query wording.
DEFAULT_FUSION_WEIGHTS = {
    "semantic": 0.4,
    "keyword": 0.3,
    "metadata": 0.3,
    "image": 0.1,
}

# Reciprocal-rank fusion constant: score = sum(1 / (RRF_K + rank))
RRF_K = 60

# Metadata score when the query activates no state/section/topic filter
METADATA_NEUTRAL_SCORE = 0.5

RETRIEVAL_MAX_RESULTS = 5       # Default number of results per search
RETRIEVAL_MAX_RESULTS_CAP = 50  # Hard ceiling for max_results

# Score thresholds used when explaining a result
EXPLAIN_SEMANTIC_THRESHOLD = 0.3
EXPLAIN_KEYWORD_THRESHOLD = 0.3
EXPLAIN_METADATA_THRESHOLD = 0.7

# ============================================================================
# Chunking (plain-text documents)
# ============================================================================

CHUNK_SIZE = 1200               # Characters per chunk (upper bound)
CHUNK_OVERLAP = 150             # Overlap between consecutive chunks
