"""
Global constants for the tuition research pipeline.

Centralizes magic numbers and lookup lists used throughout
the pipeline for easier maintenance and tuning.
"""

# Retry / backoff defaults (overridable through PipelineConfig)
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 10000
DEFAULT_MAX_VARIATION_RETRIES = 3

# Batch processing
DEFAULT_MAX_BATCH_CONCURRENCY = 1
DEFAULT_INTER_ITEM_DELAY_SECONDS = 1.0  # Upstream rate limits, ~1 request/second

# Content limits
DEFAULT_CONTENT_TRUNCATION_CHARS = 9900
MAX_CITATIONS = 3
MIN_EXCERPT_CHARS = 10  # Chunk text at or below this length is treated as empty
DEDUP_PREFIX_CHARS = 200  # Excerpt prefix compared for near-duplicate sources
INLINE_CITATION_MAX_CHARS = 200

# Input validation
SCHOOL_NAME_MAX_LENGTH = 500
PROGRAM_NAME_MAX_LENGTH = 500

# Verification thresholds
ARITHMETIC_TOLERANCE = 0.05  # 5% between stated tuition and cost x credits
ARITHMETIC_WARN_TOLERANCE = 0.15  # Up to 15% usually means fees were folded in
CALCULATED_TOTAL_TOLERANCE = 0.01

# Plausibility bounds (min, max) inclusive, graduate business programs
PLAUSIBILITY_BOUNDS: dict[str, tuple[float, float]] = {
    "tuition_amount": (5_000, 300_000),
    "cost_per_credit": (100, 5_000),
    "total_credits": (20, 100),
}

# Completeness weighting (must sum to 100)
COMPLETENESS_REQUIRED_FIELDS = ("tuition_amount", "tuition_period", "academic_year")
COMPLETENESS_IMPORTANT_FIELDS = ("cost_per_credit", "total_credits", "program_length")
COMPLETENESS_OPTIONAL_FIELDS = ("is_stem", "additional_fees", "remarks")
COMPLETENESS_WEIGHTS = {"required": 50, "important": 35, "optional": 15}

# Third-party aggregators that must not be treated as the school's own source
AGGREGATOR_DOMAINS = {
    "clearadmit.com",
    "poetsandquants.com",
    "shiksha.com",
    "collegechoice.net",
    "usnews.com",
    "bloomberg.com",
    "fortune.com",
    "mba.com",
    "princetonreview.com",
    "niche.com",
    "collegeboard.org",
    "wikipedia.org",
    "reddit.com",
    "gmatclub.com",
    "topmba.com",
}

# Hosts that wrap the real destination of a grounding citation
GROUNDING_REDIRECT_HOSTS = {
    "vertexaisearch.cloud.google.com",
}

# Excerpt text the upstream service returns when it has nothing to show
UNAVAILABLE_EXCERPT_SENTINELS = (
    "no extractable text",
    "content unavailable",
    "no content available",
    "not available",
    "n/a",
)

# Generic words ignored when matching a school name against a domain
SCHOOL_STOPWORDS = {"university", "college", "school", "the", "of", "and", "business", "at", "in"}
