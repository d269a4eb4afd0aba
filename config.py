"""
config.py — Centralised configuration & tuning constants
=========================================================
Every tunable constant in the project lives here so that the rest of the
codebase can import from a single source of truth.

Most of the quality-scoring constants are empirically tuned defaults,
not physical invariants.  Functions and classes take them as keyword
defaults, so a caller can override any of them per call / per instance.
"""

# ─── Unified Timeline ────────────────────────────────────────────────────────
TARGET_RATE_HZ: float = 100.0       # Fixed rate both channels are resampled to
MAX_DRIFT_MS_PER_S: float = 5.0     # |drift| below this is acceptable
FRAME_DROP_FACTOR: float = 1.5      # Interval > factor × median interval → drop

# ─── Detrending ──────────────────────────────────────────────────────────────
DETREND_CUTOFF_HZ: float = 0.5      # First-order IIR high-pass cutoff
DETREND_WINDOW_SAMPLES: int = 100   # Centred moving-average window (1 s @ 100 Hz)

# ─── Band-pass Filter ────────────────────────────────────────────────────────
# 0.7 Hz  →  42 BPM   (lower physiological limit)
# 4.0 Hz  → 240 BPM   (upper safety margin)
BP_LOW_HZ: float = 0.7
BP_HIGH_HZ: float = 4.0
FILTER_ORDER: int = 4               # Even; sections per stage = order / 2
ZERO_PHASE: bool = True             # Forward-backward filtering (no group delay)

# ─── Wavelet Denoising ───────────────────────────────────────────────────────
WAVELET_LEVELS: int = 4
WAVELET_THRESHOLD_MODE: str = "soft"    # "soft" | "hard"
WAVELET_THRESHOLD_SCALE: float = 1.0    # 0 disables thresholding (lossless)
MAD_TO_SIGMA: float = 0.6745

# ─── Normalisation ───────────────────────────────────────────────────────────
NORMALIZE_EPSILON: float = 1e-10    # stdev below this → all-zero output

# ─── Spectral Analysis ───────────────────────────────────────────────────────
HR_BAND_HZ: tuple[float, float] = (0.7, 3.0)        # Fundamental search band
ENTROPY_BAND_HZ: tuple[float, float] = (0.5, 5.0)   # Spectral entropy sub-band
HARMONIC_SEARCH_BINS: int = 2       # ± bins scanned around k × f0
SNR_SIGNAL_BINS: int = 2            # ± bins counted as "signal" per harmonic
SNR_CAP_DB: float = 100.0

# ─── Lag Estimation ──────────────────────────────────────────────────────────
MAX_LAG_SECONDS: float = 2.0        # Generic search range for compute_lag
PTT_MAX_LAG_SECONDS: float = 0.25   # ± PTT search range, well under one beat period
MIN_RELIABLE_CORRELATION: float = 0.7
LAG_MIN_MS: float = 30.0            # Plausible PTT range
LAG_MAX_MS: float = 200.0
SHARPNESS_OFFSET_MS: float = 100.0  # Peak vs. correlation ±100 ms away
SHARPNESS_FULL_SCALE: float = 0.15  # Sharpness at which the norm saturates at 1

# ─── Lag Stability ───────────────────────────────────────────────────────────
CORR_WINDOW_SECONDS: float = 15.0
CORR_WINDOW_OVERLAP: float = 0.5    # Fraction of the window shared by neighbours
STABILITY_MIN_CORRELATION: float = 0.3
STABILITY_MAX_STD_MS: float = 25.0

# ─── Peak / Foot Detection ───────────────────────────────────────────────────
PEAK_THRESHOLD_STD: float = 0.3     # Threshold = mean + k × std
PEAK_MIN_DISTANCE_MS: float = 350.0
RR_MIN_MS: float = 350.0
RR_MAX_MS: float = 2000.0
REGULARITY_CV_LIMIT: float = 0.4    # CV at which regularity score reaches 0
FOOT_SEARCH_MS: float = 600.0       # Max look-back before a peak for its foot
FOOT_PAIR_MAX_MS: float = 300.0     # Max |foot_B − foot_A| when pairing beats

# ─── Heart Rate ──────────────────────────────────────────────────────────────
HR_MIN_BPM: float = 40.0
HR_MAX_BPM: float = 180.0

# ─── Signal Quality ──────────────────────────────────────────────────────────
SNR_FULL_SCORE_DB: float = 15.0     # SNR ≥ this → SNR score 100
SNR_FLOOR_SCORE: float = 10.0       # SNR ≤ 0 dB → this fixed floor
WEIGHT_SNR: float = 0.7
WEIGHT_REGULARITY: float = 0.3
WEIGHT_MOTION: float = 0.2          # Only when a motion metric is supplied
WEIGHT_INERTIAL: float = 0.1        # Only when an inertial metric is supplied
MOTION_PENALTY_RANGE_PX: tuple[float, float] = (0.5, 3.0)
INERTIAL_PENALTY_RANGE_G: tuple[float, float] = (0.05, 0.5)
CONFIDENCE_THRESHOLD: float = 0.60  # PttResult reportable iff confidence ≥ this
LOW_SNR_GUIDANCE_DB: float = 6.0
LOW_SQI_GUIDANCE: float = 60.0      # Channel score below this gets a guidance line
LOW_SHARPNESS_GUIDANCE: float = 0.5  # sharpness_norm below this gets a guidance line

# ─── Consensus ───────────────────────────────────────────────────────────────
CONSENSUS_MAX_SPREAD_MS: float = 20.0   # Methods agreeing within this are "in agreement"
DISAGREEMENT_FACTOR: float = 0.5        # Confidence multiplier on disagreement
IMPLAUSIBLE_FACTOR: float = 0.5         # Confidence multiplier on lag outside bounds
MIN_FOOT_PAIRS: int = 3

# ─── Motion Masking ──────────────────────────────────────────────────────────
MASK_WINDOW_SECONDS: float = 1.0
MASK_MOTION_MAX_PX: float = 1.0
MASK_INERTIAL_MAX_G: float = 0.1
MASK_DROP_DENSITY_MAX: float = 0.2      # Fraction of dropped frames per window
MIN_SEGMENT_SECONDS: float = 5.0

# ─── Streaming Quality Monitor ───────────────────────────────────────────────
STREAM_UPDATE_INTERVAL_MS: int = 400
STREAM_WINDOW_SECONDS: float = 8.0
STREAM_BUFFER_SECONDS: float = 20.0
STREAM_MAX_FPS: int = 90            # Generous upper bound used for capacity
STREAM_MIN_SAMPLES: int = 30
DRIFT_MONITOR_CAPACITY: int = 2048

# ─── Measurement Session ─────────────────────────────────────────────────────
SESSION_BUFFER_SECONDS: float = 60.0    # Raw history kept per channel
SESSION_MEASURE_SECONDS: float = 30.0   # Default window analysed by /session/measure

# ─── API ─────────────────────────────────────────────────────────────────────
API_TITLE = "Dual-PPG Pulse Transit Time API"
API_VERSION = "0.1.0"
