"""Centralized constants for TeleGuard."""


# ===== AUDIT =====
class AuditConstants:
    HASH_ALGORITHM = "sha256"
    LOG_FILENAME_PATTERN = "teleguard_audit_{date}.jsonl"


# ===== SCORING =====
class ScoringConstants:
    SCORE_MIN = 0.0
    SCORE_MAX = 10.0

    # Heuristic fallback ranges (base, spread)
    PHISHING_SCORE_RANGE = (7.0, 3.0)
    CALL_FRAUD_SCORE_RANGE = (6.0, 2.0)
    SIM_SWAP_SCORE_RANGE = (8.0, 2.0)
    BASELINE_SCORE_RANGE = (0.0, 10.0)
    HEURISTIC_CONFIDENCE_RANGE = (0.7, 0.3)

    # Call duration bounds (seconds) outside which a voice call is suspicious
    SHORT_CALL_SECONDS = 5
    LONG_CALL_SECONDS = 3600

    # Behavior samples with more activity than this look like a SIM swap
    SIM_SWAP_ACTIVITY_THRESHOLD = 50

    PHISHING_KEYWORDS = (
        "urgent",
        "click",
        "verify",
        "account",
        "suspended",
        "password",
        "winner",
        "prize",
        "login",
        "bank",
        "otp",
        "act now",
        "confirm your",
    )

    # External inference
    INFERENCE_CONNECT_TIMEOUT_SECONDS = 3.0
    INFERENCE_READ_TIMEOUT_SECONDS = 10.0
    INFERENCE_CHUNK_BYTES = 8192


# ===== CLASSIFICATION & POLICY =====
class PolicyConstants:
    CRITICAL_MIN_SCORE = 8.5
    HIGH_MIN_SCORE = 7.0
    MEDIUM_MIN_SCORE = 5.0
    # Strict: a threat is created only when score > this value
    THREAT_CREATION_THRESHOLD = 5.0


# ===== OUTLIER DETECTION =====
class OutlierConstants:
    MIN_SAMPLE_SIZE = 50
    MAX_DURATION_OUTLIERS = 5

    DURATION_Z_THRESHOLD = 2.0
    DURATION_Z_CRITICAL = 3.0
    DURATION_Z_HIGH = 2.5
    DURATION_CONFIDENCE_CAP = 0.95

    LOCATION_MIN_DISTINCT = 3
    LOCATION_Z_THRESHOLD = 2.0
    LOCATION_Z_CRITICAL = 3.0
    LOCATION_MEAN_MULTIPLIER = 2.0
    LOCATION_HIGH_MEAN_MULTIPLIER = 4.0
    LOCATION_CONFIDENCE_CAP = 0.9

    FRAUD_RATE_THRESHOLD = 0.10
    FRAUD_RATE_HIGH = 0.15
    FRAUD_RATE_CRITICAL = 0.20
    FRAUD_RATE_SCORE_MULTIPLIER = 50.0
    FRAUD_RATE_CONFIDENCE = 0.9


# ===== DATA & QUERY LIMITS =====
class DataConstants:
    DEFAULT_QUERY_LIMIT = 100
    DEFAULT_ACTION_LIMIT = 50
    ACTIVITY_SCAN_LIMIT = 1000
    UNUSUAL_HOURS_START = 6   # peak hour before this is unusual
    UNUSUAL_HOURS_END = 22    # peak hour after this is unusual


# ===== PIPELINE =====
class PipelineConstants:
    DEFAULT_MAX_WORKERS = 4
