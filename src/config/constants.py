# Constants for better maintainability
# ==============================================================================
# Cache
# ==============================================================================


class CacheTTL:
    """Cache lifetimes (seconds)"""

    # Selectable-credential snapshot; every pool mutation invalidates it eagerly
    POOL_SELECTION = 60


# ==============================================================================
# Credential pool
# ==============================================================================


class CredentialDefaults:
    """Defaults applied when a credential is added without explicit values"""

    TIER = "promo_starter"
    COST_PER_UNIT = 0.00015
    MONTHLY_QUOTA = 30000
    PRIORITY = 5
    REGION_CODE = "us"

    # Priority 1 is the best / most trusted, 10 the worst
    PRIORITY_MIN = 1
    PRIORITY_MAX = 10

    # Sentinel for an unlimited monthly quota
    UNLIMITED_QUOTA = -1

    # Upstream plan label -> (cost per character, characters per month)
    # Only consulted at creation time when cost/quota are omitted.
    TIER_PROFILES: dict[str, tuple[float, int]] = {
        "free": (0.0, 10000),
        "starter": (0.0003, 30000),
        "promo_starter": (0.00015, 30000),
        "creator": (0.00022, 100000),
        "pro": (0.00018, 500000),
        "scale": (0.00015, 2000000),
    }


# ==============================================================================
# Caller quotas
# ==============================================================================


class UserKeyFormat:
    """Formats of issued identifiers"""

    USER_KEY_PREFIX = "CV"
    SUPPORTER_CODE_PREFIX = "COLONIST"


# ==============================================================================
# Upstream
# ==============================================================================


class SpeechDefaults:
    """Upstream request defaults for speech generation"""

    MAX_TOKENS = 100
    TEMPERATURE = 0.8
    STABILITY = 0.0
    SIMILARITY_BOOST = 0.75
