"""Constants for domain reputation aggregation."""

# Neutral reputation for domains without a snapshot
NEUTRAL_REPUTATION: float = 0.5

# Bayesian smoothing of the approval ratio
MODERATION_PRIOR: float = 0.5
MODERATION_PRIOR_WEIGHT: float = 10.0

# Trust score blend
TRUST_MODERATION_WEIGHT: float = 0.4
TRUST_QUALITY_WEIGHT: float = 0.3
TRUST_ENGAGEMENT_WEIGHT: float = 0.2
TRUST_FLAG_WEIGHT: float = 0.1
FLAG_PENALTY_PER_ITEM: float = 0.1

# Raw reputation blend
REPUTATION_TRUST_WEIGHT: float = 0.6
REPUTATION_QUALITY_WEIGHT: float = 0.4
ENGAGEMENT_BASE: float = 0.8
ENGAGEMENT_SCALE: float = 0.4

# Activity recency: full credit for this many days, then exponential decay
ACTIVITY_GRACE_DAYS: float = 90.0
ACTIVITY_DECAY_DAYS: float = 180.0

# Blacklist thresholds
BLACKLIST_FLAGGED_COUNT: int = 5
BLACKLIST_REJECTION_RATIO: float = 0.8
BLACKLIST_MIN_REPUTATION: float = 0.2

# Scoring multiplier range
MULTIPLIER_MIN: float = 0.8
MULTIPLIER_MAX: float = 1.2
