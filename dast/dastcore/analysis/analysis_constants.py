# Placeholder replaced by the delay (in seconds) in timing payloads
TIMING_PLACEHOLDER = "__TIME__"
# Minimum delay (ms) a response must show before it is considered delayed
DEFAULT_TIMING_TIMEOUT_MS = 4000
# timeout / divider = value written into the payload (ms -> s)
DEFAULT_TIMEOUT_DIVIDER = 1000

# Boolean expression pairs for differential analysis: (true, false)
DEFAULT_RDIFF_PAIRS = (
    ("' AND '1'='1", "' AND '1'='2"),
    (" AND 1=1", " AND 1=2"),
)
# Injections expected to break the response outright
DEFAULT_RDIFF_FAULTS = ("'\"`--",)
# How many times each differential round is repeated
DEFAULT_RDIFF_PRECISION = 2
