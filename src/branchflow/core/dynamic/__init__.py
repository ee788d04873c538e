# src/branchflow/core/dynamic/__init__.py
"""
Ramificação dinâmica: fatiamento de entradas, expansão em sub-targets
(`map`, `cross`, `combine`) e agregação de resultados.
"""

from .aggregator import Aggregator
from .expander import (
    BranchesInput,
    BranchInput,
    DynamicExpander,
    SubTarget,
    ValueInput,
    subtarget_key,
)
from .slicing import element_at, element_count, take_elements

__all__ = [
    "Aggregator",
    "BranchesInput",
    "BranchInput",
    "DynamicExpander",
    "SubTarget",
    "ValueInput",
    "subtarget_key",
    "element_at",
    "element_count",
    "take_elements",
]
