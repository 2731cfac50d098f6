"""
Prometheus metrics for monitoring
"""

from prometheus_client import Counter, Gauge

# Credential selection outcomes
# tier: free/supporter/premium/unknown, outcome: selected/exhausted/store_unavailable
pool_selection_total = Counter(
    "pool_selection_total",
    "Total number of credential selections",
    ["tier", "outcome"],
)

# Selections that fell back to the full selectable set because the tier filter was empty
pool_tier_fallback_total = Counter(
    "pool_tier_fallback_total",
    "Selections where the tier preference yielded no candidate",
    ["tier"],
)

# Automatic and manual pauses
pool_pause_total = Counter(
    "pool_pause_total",
    "Total number of pooled resources paused",
    ["pool", "cause"],  # pool: credential/proxy
)

# Outcome reports from callers
pool_outcome_total = Counter(
    "pool_outcome_total",
    "Success/failure reports recorded against pooled resources",
    ["pool", "outcome"],
)

# Credentials whose quota period rolled over
pool_quota_resets_total = Counter(
    "pool_quota_resets_total",
    "Total number of credential quota rollovers",
)

# Background sweep runs
pool_sweep_runs_total = Counter(
    "pool_sweep_runs_total",
    "Background sweep runs",
    ["job", "status"],  # status: ok/error
)

# Pool composition as of the last stats() call
pool_credentials = Gauge(
    "pool_credentials",
    "Number of credentials in the pool by status",
    ["status"],
)
