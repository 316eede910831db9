"""
Adaptive configuration for template recommendation and parameter adjustment.
"""

import os

# =============================================================================
# 1. REFERENCE CLOCK / INSTRUMENT
# =============================================================================

REFERENCE_TIMEZONE: str = os.getenv("ADVISOR_REFERENCE_TZ", "UTC")
DEFAULT_INSTRUMENT: str = os.getenv("ADVISOR_DEFAULT_INSTRUMENT", "NQ")

# Ordered session table: (session_id, start "HH:MM", end "HH:MM") in REFERENCE_TIMEZONE.
# A range whose start is after its end wraps midnight.
SESSION_TABLE = (
    ("ASIA", "01:00", "08:00"),
    ("EUROPE", "08:00", "13:00"),
    ("US_OPEN", "13:00", "15:00"),
    ("US_MIDDAY", "15:00", "18:00"),
    ("US_AFTERNOON", "18:00", "21:00"),
    ("OVERNIGHT", "21:00", "01:00"),
)
OFF_HOURS_SESSION: str = "OVERNIGHT"

SESSION_INFO = {
    "ASIA": {"name": "Asian Session", "features": ("thin liquidity", "range-bound price action")},
    "EUROPE": {"name": "European Session", "features": ("rising volume", "early directional moves")},
    "US_OPEN": {"name": "US Opening", "features": ("opening volatility", "highest volume of the day")},
    "US_MIDDAY": {"name": "US Midday", "features": ("lunchtime chop", "fading volume")},
    "US_AFTERNOON": {"name": "US Afternoon", "features": ("trend continuation", "closing flows")},
    "OVERNIGHT": {"name": "Overnight", "features": ("low volume", "gap risk")},
}

# Coarse session buckets used for partial similarity credit
MORNING_SESSIONS = ("ASIA", "EUROPE", "US_OPEN")
AFTERNOON_SESSIONS = ("US_MIDDAY", "US_AFTERNOON", "OVERNIGHT")

# Backtest store query mapping
SESSION_TIME_OF_DAY = {
    "ASIA": "Morning",
    "EUROPE": "Morning",
    "US_OPEN": "Morning",
    "US_MIDDAY": "Afternoon",
    "US_AFTERNOON": "Afternoon",
    "OVERNIGHT": "Evening",
}
VOLATILITY_SESSION_TYPE = {
    "HIGH": "High Volatility",
    "MEDIUM": "Regular",
    "LOW": "Low Volatility",
}

# =============================================================================
# 2. VOLATILITY / TREND / VOLUME CLASSIFICATION
# =============================================================================

# Ratio of current value to its trailing average -> points
VOL_RATIO_STRONG: float = 1.5   # +/-2 points
VOL_RATIO_MILD: float = 1.1     # +/-1 point
VOL_POINTS_HIGH: int = 2        # sum >= this -> HIGH
VOL_POINTS_LOW: int = -2        # sum <= this -> LOW

# volatility_score = VOL_SCORE_CENTER + points (0-10 scale)
VOL_SCORE_CENTER: float = 5.0
VOL_SCORE_MAX: float = 10.0
CATEGORY_VOL_SCORE = {"LOW": 2.0, "MEDIUM": 5.0, "HIGH": 8.0}

# Baseline table thresholds on volatility_score
VOL_SCORE_HIGH_TABLE: float = 7.0
VOL_SCORE_MEDIUM_TABLE: float = 4.0

# Price vs trailing average (fractional change)
TREND_WEAK_PCT: float = 0.0025
TREND_STRONG_PCT: float = 0.01

# Volume ratio bands
VOLUME_LOW_RATIO: float = 0.7
VOLUME_HIGH_RATIO: float = 1.3

# =============================================================================
# 3. TEMPLATE NAME GRAMMAR / SIMILARITY
# =============================================================================

TEMPLATE_NAME_DELIMITERS: str = r"[_\-\s]+"

SESSION_CODES = {
    "EA": "US_AFTERNOON",
    "PC": "US_AFTERNOON",
    "MO": "US_OPEN",
    "OPEN": "US_OPEN",
    "MI": "US_MIDDAY",
    "LM": "US_MIDDAY",
    "ASIA": "ASIA",
    "EU": "EUROPE",
    "EUROPE": "EUROPE",
    "ON": "OVERNIGHT",
    "NIGHT": "OVERNIGHT",
}
VOLATILITY_CODES = {
    "LOW": "LOW",
    "MED": "MEDIUM",
    "MEDIUM": "MEDIUM",
    "NORM": "MEDIUM",
    "HIGH": "HIGH",
}

SIMILARITY_SESSION_WEIGHT: float = 40.0
SIMILARITY_VOLATILITY_WEIGHT: float = 40.0
SIMILARITY_DAY_WEIGHT: float = 10.0
SIMILARITY_VOLUME_WEIGHT: float = 10.0
SIMILARITY_MIN_AVAILABLE_WEIGHT: float = 50.0
SIMILARITY_SPARSE_SCORE: int = 20

# =============================================================================
# 4. BASELINE ADJUSTMENT TABLES (stop_loss, target, trailing_stop)
# =============================================================================

VOLATILITY_ADJUSTMENTS = {
    "HIGH": (1.3, 1.2, 1.15),
    "MEDIUM": (1.1, 1.05, 1.05),
    "LOW": (0.85, 0.9, 0.95),
}
TIME_OF_DAY_ADJUSTMENTS = {
    "Morning": (1.15, 1.1, 1.05),
    "Afternoon": (1.0, 1.0, 1.0),
    "Evening": (0.9, 0.95, 0.95),
}

# =============================================================================
# 5. BACKTEST AGGREGATION
# =============================================================================

BACKTEST_MIN_SIMILARITY: float = 0.0    # eligible when score > this
BASELINE_PROFIT_FACTOR: float = 1.5
BASELINE_AVERAGE_RR: float = 1.5

# Confidence by effective (similarity-weighted) trades and record count
HIGH_CONFIDENCE_EFFECTIVE_TRADES: float = 20.0
HIGH_CONFIDENCE_MIN_RECORDS: int = 5
MEDIUM_CONFIDENCE_EFFECTIVE_TRADES: float = 5.0
MEDIUM_CONFIDENCE_MIN_RECORDS: int = 2

# Multiplier slopes on normalized profit-factor delta in [-1, 1]
STOP_LOSS_PF_SLOPE: float = 0.2
TRAILING_STOP_PF_SLOPE: float = 0.15
TARGET_PF_SLOPE: float = 0.2
TARGET_RR_SLOPE: float = 0.1

# Performance score
PERF_WIN_RATE_WEIGHT: float = 0.4
PERF_PROFIT_FACTOR_WEIGHT: float = 0.4
PERF_AVERAGE_RR_WEIGHT: float = 0.2
PERF_FULL_WEIGHT_SAMPLES: int = 20
PERF_MIN_RELIABILITY: float = 0.4

# Multi-period trend
TREND_MAX_PERIODS: int = 3
TREND_PERIOD_FREQ: str = "W"
TREND_WEAK_CHANGE: float = 0.05
TREND_STRONG_CHANGE: float = 0.2

# =============================================================================
# 6. BLENDING
# =============================================================================

# confidence tier -> (backtest, volatility, session)
BLEND_WEIGHTS = {
    "high": (0.7, 0.15, 0.15),
    "medium": (0.5, 0.3, 0.2),
    "low": (0.3, 0.4, 0.3),
}
TREND_STRONG_SCALAR: float = 0.10
TREND_WEAK_SCALAR: float = 0.05
NEWS_MAX_STOP_WIDEN: float = 0.15
NEWS_MAX_TARGET_WIDEN: float = 0.10

# Hard bounds on any final multiplier and on any adjusted field vs its original
MULTIPLIER_BOUNDS = (0.7, 1.5)

# =============================================================================
# 7. NEWS
# =============================================================================

NEWS_MACRO_CATEGORIES = ("volatility", "futures", "central-bank", "economic-data")
NEWS_CATEGORY_KEYWORDS = {
    "volatility": ("volatility", "vix", "selloff", "sell-off"),
    "futures": ("futures", "contract", "rollover"),
    "central-bank": ("fed", "federal reserve", "interest rate", "rate hike", "rate cut", "fomc", "powell"),
    "economic-data": ("inflation", "cpi", "ppi", "gdp", "employment", "payrolls", "jobless"),
}
INSTRUMENT_ALIASES = {
    "NQ": ("nasdaq", "nasdaq-100", "nasdaq 100", "tech stocks"),
    "ES": ("s&p 500", "s&p", "spx"),
    "YM": ("dow", "dow jones"),
    "RTY": ("russell", "russell 2000"),
    "CL": ("crude", "oil", "wti"),
    "GC": ("gold",),
}
POSITIVE_WORDS = (
    "gain", "gains", "rise", "rises", "rising", "up", "higher",
    "increase", "increased", "increasing", "growth", "growing",
    "positive", "strong", "stronger", "rally", "bullish",
    "outperform", "beat", "exceed", "exceeded", "record",
)
NEGATIVE_WORDS = (
    "drop", "drops", "fall", "falls", "falling", "down", "lower",
    "decrease", "decreased", "decreasing", "decline", "declining",
    "negative", "weak", "weaker", "bearish", "underperform",
    "miss", "missed", "disappoint", "disappointed", "worry",
)
SHOCK_WORDS = (
    "uncertainty", "uncertain", "shock", "surprise", "surprising", "volatile",
    "volatility", "turmoil", "crash", "plunge", "panic", "fear", "crisis",
    "emergency", "unexpected", "selloff", "sell-off",
)
NEWS_KEYWORD_POLARITY: float = 0.2
NEWS_LABEL_POLARITY: float = 1.0
NEWS_SENTIMENT_THRESHOLD: float = 0.3
NEWS_SHOCK_HITS_FOR_FULL_IMPACT: float = 2.0  # per relevant item
NEWS_HIGH_CONFIDENCE_ITEMS: int = 3
NEWS_MEDIUM_CONFIDENCE_ITEMS: int = 1

# =============================================================================
# 8. CONFIDENCE / SELECTION
# =============================================================================

CONFIDENCE_WEIGHTS = {"parameter": 0.3, "news": 0.15, "backtest": 0.55}
CONFIDENCE_HIGH_THRESHOLD: float = 2.5
CONFIDENCE_MEDIUM_THRESHOLD: float = 1.7
SIMILARITY_HIGH_CONFIDENCE: float = 80.0
SIMILARITY_MEDIUM_CONFIDENCE: float = 40.0

SELECTION_SIMILARITY_WEIGHT: float = 0.7
SELECTION_PERFORMANCE_WEIGHT: float = 0.3
SELECTION_MIN_COMBINED_SCORE: float = 40.0

# =============================================================================
# 9. FALLBACK TEMPLATES (by volatility category)
# =============================================================================

FALLBACK_BRACKET = {
    "HIGH": {"stop_loss": 12, "target": 24, "break_even_trigger": 12, "break_even_plus": 8},
    "MEDIUM": {"stop_loss": 9, "target": 18, "break_even_trigger": 9, "break_even_plus": 6},
    "LOW": {"stop_loss": 6, "target": 12, "break_even_trigger": 6, "break_even_plus": 4},
}
FALLBACK_FILTER = {
    "HIGH": {"fast_period": 3, "fast_range": 4, "medium_period": 8, "medium_range": 5,
             "slow_period": 15, "slow_range": 6, "filter_multiplier": 1},
    "MEDIUM": {"fast_period": 5, "fast_range": 3, "medium_period": 10, "medium_range": 4,
               "slow_period": 20, "slow_range": 5, "filter_multiplier": 2},
    "LOW": {"fast_period": 8, "fast_range": 2, "medium_period": 15, "medium_range": 3,
            "slow_period": 30, "slow_range": 4, "filter_multiplier": 3},
}
