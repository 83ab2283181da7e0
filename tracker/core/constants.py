"""
Fixed limits shared by the aggregation layer.

Tunable durations (TTLs, deadlines, settle delay) live in settings;
these values are structural and do not change per deployment.
"""

# Rows per upsert statement inside a batch transaction
DB_BATCH_SIZE = 100

# Participation rows in a complete 5v5 match
FULL_ROSTER_SIZE = 10

# Default and maximum page size for player search suggestions
SEARCH_SUGGESTION_LIMIT = 10
SEARCH_SUGGESTION_MAX = 50

# Quota warning threshold (fraction of the bucket limit still available)
QUOTA_LOW_WATERMARK = 0.10

# Source tags recorded on canonical rows
MATCH_SOURCE_STORED = "stored"
MATCH_SOURCE_V4 = "v4"
MATCH_SOURCE_V2 = "v2"

MMR_SOURCE_STORED = "stored-mmr-history"
MMR_SOURCE_HISTORY = "mmr-history"

COMPETITIVE_MODE = "competitive"
