"""Splice generated code into ``"use prompt: ..."`` functions at build time."""

from .config import EngineConfig, PendingPolicy, load_config
from .transform import CacheLoadError, SubstitutionStore, TransformResult, transform_module, transform_source

__all__ = [
    "CacheLoadError",
    "EngineConfig",
    "PendingPolicy",
    "SubstitutionStore",
    "TransformResult",
    "load_config",
    "transform_module",
    "transform_source",
]

__version__ = "0.1.0"
