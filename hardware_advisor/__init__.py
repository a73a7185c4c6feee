"""Hardware Advisor - hardware recommendation engine for ML inference and training."""

from .errors import (
    EmptyCatalog,
    HardwareAdvisorError,
    IncompleteModelSpec,
    InvalidConfiguration,
    InvalidHardwareProfile,
    InvalidModelSpec,
    InvalidWorkload,
    ModelFetchError,
    NoFeasibleHardware,
    ThroughputUnattainable,
)
from .estimator import ResourceEstimator, ThroughputEstimate
from .hardware_library import (
    add_hardware_profiles,
    create_custom_hardware,
    get_hardware_from_library,
    get_hardware_profiles,
    list_available_hardware,
    load_catalog,
)
from .model_config import load_model_config, model_spec_from_config
from .models import (
    ArchitectureFamily,
    Configuration,
    HardwareCatalog,
    HardwareProfile,
    ModelSpec,
    OptimizerKind,
    ParallelismStrategy,
    Precision,
    ResourceEstimate,
    WorkloadIntent,
    WorkloadMode,
)
from .recommender import (
    Evaluation,
    FeasibilityStatus,
    Recommendation,
    RecommendationEngine,
    RecommendationResult,
)
from .search import ConfigurationSearch

__version__ = "0.1.0"

__all__ = [
    "ModelSpec",
    "WorkloadIntent",
    "HardwareProfile",
    "HardwareCatalog",
    "Configuration",
    "ResourceEstimate",
    "Precision",
    "ArchitectureFamily",
    "WorkloadMode",
    "ParallelismStrategy",
    "OptimizerKind",
    "ResourceEstimator",
    "ThroughputEstimate",
    "ConfigurationSearch",
    "RecommendationEngine",
    "Recommendation",
    "RecommendationResult",
    "Evaluation",
    "FeasibilityStatus",
    "HardwareAdvisorError",
    "IncompleteModelSpec",
    "InvalidModelSpec",
    "InvalidWorkload",
    "InvalidHardwareProfile",
    "InvalidConfiguration",
    "EmptyCatalog",
    "NoFeasibleHardware",
    "ThroughputUnattainable",
    "ModelFetchError",
    "add_hardware_profiles",
    "get_hardware_from_library",
    "get_hardware_profiles",
    "list_available_hardware",
    "create_custom_hardware",
    "load_catalog",
    "model_spec_from_config",
    "load_model_config",
]
