"""Model catalog: descriptors, registry and selection."""

from .descriptors import (
    ModelCapabilities,
    ModelDescriptor,
    ParameterConstraints,
    ParameterRange,
    PerformancePriority,
    SelectionCriteria,
    UseCase,
)
from .registry import ModelRegistry, SeedCatalog, load_seed_catalog

__all__ = [
    "ModelCapabilities",
    "ModelDescriptor",
    "ModelRegistry",
    "ParameterConstraints",
    "ParameterRange",
    "PerformancePriority",
    "SeedCatalog",
    "SelectionCriteria",
    "UseCase",
    "load_seed_catalog",
]
