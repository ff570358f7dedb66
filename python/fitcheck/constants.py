"""
Central configuration and constants for fitcheck.

This module provides a single source of truth for all default values
and magic numbers used throughout the library.
"""

__all__ = [
    # Thresholds
    "DEFAULT_TAIL_PROBABILITY",
    "DEFAULT_IQR_MULTIPLIER",
    "DEFAULT_CI_LEVEL",
    "DEFAULT_PARETO_K",
    "DEFAULT_COOK_QUANTILE",
    "DEFAULT_OPTICS_MULTIPLIER",
    # Composite score
    "COMPOSITE_CUTOFF",
    # Detector internals
    "MAD_NORMAL_SCALE",
    "MCD_SUPPORT_FRACTION",
    "OPTICS_XI",
    "OGK_N_ITER",
    "OGK_BETA",
    "ICS_LEVEL_TEST",
    "ICS_N_REPLICATES",
    "PSIS_MIN_TAIL",
    "PSIS_MIN_GRID_POINTS",
    "DEFAULT_RANDOM_STATE",
    # Numerical stability
    "EPSILON",
    # Concurrency
    "DEFAULT_MAX_WORKERS",
]

# =============================================================================
# Default Thresholds
# =============================================================================
DEFAULT_TAIL_PROBABILITY = 0.025   # zscore, chi-squared cutoffs, ics, lof
DEFAULT_IQR_MULTIPLIER = 1.5       # Tukey fences
DEFAULT_CI_LEVEL = 0.95            # eti / hdi / bci coverage
DEFAULT_PARETO_K = 0.7
DEFAULT_COOK_QUANTILE = 0.5        # median of F(p, n - p)
DEFAULT_OPTICS_MULTIPLIER = 2      # min_samples = 2 * n_columns

# =============================================================================
# Composite Score
# =============================================================================
COMPOSITE_CUTOFF = 0.5

# =============================================================================
# Detector Internals
# =============================================================================
MAD_NORMAL_SCALE = 1.4826
MCD_SUPPORT_FRACTION = 0.66
OPTICS_XI = 0.05
OGK_N_ITER = 2
OGK_BETA = 0.9
ICS_LEVEL_TEST = 0.05
ICS_N_REPLICATES = 50
PSIS_MIN_TAIL = 5
PSIS_MIN_GRID_POINTS = 30
DEFAULT_RANDOM_STATE = 42

# =============================================================================
# Numerical Stability
# =============================================================================
EPSILON = 1e-10

# =============================================================================
# Concurrency
# =============================================================================
DEFAULT_MAX_WORKERS = 4
