"""
__init__.py: Exposes key functions from the submodules.
"""
# Expose core configuration and exceptions
from .image_config import (
    ELL, FULL_IMAGE_LABEL, DEFAULT_PRIME_BOUND, default_config,
    Mod5ImageError, PointCountError, LatticeDataError, RationalReconstructionError, InversionError
)

# Data sources
from .lattice import SubgroupLattice, SubgroupRecord, load_lattice, build_subgroup_record, allowed_labels
from .invariants import InvariantPair, InvariantDictionary, build_dictionary, invariant_pairs
from .curve_data import Genus2Curve, make_curve, parse_curve_entry

# Local method
from .frobenius import (
    FrobeniusRecord, FrobeniusSample, PointCounter, SagePointCounter, SubprocessPointCounter,
    sample_frobenius
)
from .narrowing import NarrowingReport, narrow

# Global method
from .rational_arithmetic import best_approximation, reconstruct_rational
from .rational_torsion import five_divides_rational_torsion, filter_rational_torsion
from .quadratic_torsion import (
    Verdict, QuadraticDecision, plausible_dees, impossible_quadratic_torsion, decide_quadratic_torsion
)

# Orchestration
from .pipeline import ImageResult, determine_image, run_batch
from .errlog import ErrorLog
from .run_stats import RunStats
