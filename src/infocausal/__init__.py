"""infocausal

Information-theoretic dependence estimators and causal discovery for time series.

The package exposes:
- mutual information, conditional mutual information and transfer entropy
  estimators (nearest-neighbour, Gaussian and plug-in)
- S-, H- and M-measures, causal penchants and leanings
- surrogate and local-permutation independence tests
- the OCE causal-discovery algorithm with observers and YAML configuration
"""

from .closeness import HMeasure, MMeasure, SMeasure, h_measure, m_measure, s_measure
from .config import load_oce_config, oce_from_dict, save_oce_config
from .datasets import Dataset, align, as_dataset, embed, genembed, hstack
from .encoding import (
    FixedRectangularBinning,
    OrdinalPatternEncoding,
    RectangularBinning,
    UniqueElementsEncoding,
    encode_columns,
    encode_points,
)
from .errors import (
    ComputationError,
    ConfigurationError,
    DegenerateNeighborhood,
    DegenerateNeighborhoodWarning,
    DimensionMismatch,
    InfoCausalError,
    OCECancelled,
    ResampleFailure,
)
from .estimators import (
    KSG1,
    KSG2,
    GaussianCMI,
    MesnerShalizi,
    OrdinalPatterns,
    Rahimzamani,
    ValueBinning,
    VejmelkaPalus,
    condmutualinfo,
    mutualinfo,
)
from .independence import IndependenceTestResult, LocalPermutationTest, SurrogateTest, independence
from .leanings import lean, penchant
from .measures import CMIRenyiJizba, CMIShannon, EmbeddingTE, MIShannon, TEShannon
from .oce import OCE, LaggedVariable, OCEResult, ParentSet, infer_graph, load_json, save_json, select_parents
from .observers import JsonlObserver, LoggingObserver, NullObserver, RecordingObserver
from .transfer_entropy import te_embed, transfer_entropy

__version__ = "0.3.0"
