"""
image_config.py: Central config for the mod5image package.

Holds the algorithmic constants for local sampling, statistical narrowing and
the quadratic-torsion search, the custom exception classes, and the run
configuration dictionary handed to the pipeline.
"""

# === 1. Standard library imports ===
from math import ceil, floor

# === 2. Third-party imports ===
from colorama import Fore, Style


DEBUG = False

# === 3. Galois-image constants ===
ELL = 5
DIMENSION = 4
FULL_IMAGE_LABEL = "5.1.1"

# symplectic form used for the similitude multiplier: M^T J M = lambda J
SYMPLECTIC_FORM = [
    [0, 0, 0, 1],
    [0, 0, 1, 0],
    [0, -1, 0, 0],
    [-1, 0, 0, 0],
]

# number of 1-dimensional subspaces of F_5^4
NUM_TORSION_LINES = (ELL**DIMENSION - 1) // (ELL - 1)

# Local sampling
DEFAULT_PRIME_BOUND = 2**12
MIN_SAMPLE_PRIME = 7
SIEVE_MIN_PRIME = 7
TORSION_SAMPLE_TRIES = 40   # random divisors drawn when counting J(F_p)[5]

# Statistical narrowing
SQDIST_TOLERANCE = 0.001
LOGLIKE_TOLERANCE = 0.0001

# Analytic search
MIN_HEIGHT_BOUND = 10
MIN_PRECISION = 200         # bits
PRECISION_GUARD_BITS = 40
CONTINUATION_STEPS = 64
NEWTON_MAX_ITER = 30
INVERSION_RETRIES = 1       # one extra attempt with the doubled point
INFINITY_CUTOFF = 1e30      # |x| beyond this is treated as a point at infinity


# === 4. Custom Exception Classes ===
class Mod5ImageError(Exception):
    """Base exception for errors in the image determination."""
    pass

class PointCountError(Mod5ImageError):
    """Raised when the point-counting collaborator fails or writes garbage."""
    pass

class LatticeDataError(Mod5ImageError):
    """Raised when subgroup lattice data is malformed."""
    pass

class RationalReconstructionError(Mod5ImageError):
    """Raised when rational reconstruction fails."""
    pass

class InversionError(Mod5ImageError):
    """Raised when the Abel-Jacobi inversion does not converge."""
    pass


def default_config(**overrides):
    """
    Return the run configuration dictionary.

    Keys mirror the module constants so a batch can tune a single run
    without touching module state. Unknown keys raise KeyError.
    """
    conf = {
        'PRIME_BOUND': DEFAULT_PRIME_BOUND,
        'MIN_SAMPLE_PRIME': MIN_SAMPLE_PRIME,
        'SIEVE_MIN_PRIME': SIEVE_MIN_PRIME,
        'SQDIST_TOLERANCE': SQDIST_TOLERANCE,
        'LOGLIKE_TOLERANCE': LOGLIKE_TOLERANCE,
        'MIN_HEIGHT_BOUND': MIN_HEIGHT_BOUND,
        'MIN_PRECISION': MIN_PRECISION,
        'CONTINUATION_STEPS': CONTINUATION_STEPS,
        'NEWTON_MAX_ITER': NEWTON_MAX_ITER,
        'INVERSION_RETRIES': INVERSION_RETRIES,
        'TORSION_SAMPLE_TRIES': TORSION_SAMPLE_TRIES,
        'EARLY_SURJECTIVE_EXIT': True,
        'ANALYTIC_SEARCH': True,
        'DEBUG': DEBUG,
    }
    for key, value in overrides.items():
        if key not in conf:
            raise KeyError(f"Unknown config key: {key}")
        conf[key] = value
    return conf
