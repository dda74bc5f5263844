"""Model discovery: probing, pooling and selection."""

from .pool_manager import ModelDiscoveryError, ModelPoolManager, build_pool, classify_tier
from .prober import CapabilityProber, ModelProbeError
from .selector import ModelSelector, capability_score

__all__ = [
    "CapabilityProber",
    "ModelDiscoveryError",
    "ModelPoolManager",
    "ModelProbeError",
    "ModelSelector",
    "build_pool",
    "capability_score",
    "classify_tier",
]
