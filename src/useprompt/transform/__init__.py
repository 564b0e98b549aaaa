"""Prompt-directive transform engine."""

from .directives import DirectiveScan, DirectiveStatus, PromptRequest, find_directives, scan_directive
from .error_body import make_error_body
from .errors import CacheLoadError, FragmentParseError, HygieneError, TransformError
from .finalize import ModuleAccumulator, finalize_module
from .fragments import parse_module_items, parse_statements
from .hygiene import RenamedImports, apply_renames, hygiene_prefix, rename_imports
from .spans import ByteOffsetCalculator, Span
from .store import Substitution, SubstitutionStore
from .transformer import (
    PromptTransformer,
    SiteOutcome,
    SiteStatus,
    TransformReport,
    TransformResult,
    transform_module,
    transform_source,
)

__all__ = [
    "ByteOffsetCalculator",
    "CacheLoadError",
    "DirectiveScan",
    "DirectiveStatus",
    "FragmentParseError",
    "HygieneError",
    "ModuleAccumulator",
    "PromptRequest",
    "PromptTransformer",
    "RenamedImports",
    "SiteOutcome",
    "SiteStatus",
    "Span",
    "Substitution",
    "SubstitutionStore",
    "TransformError",
    "TransformReport",
    "TransformResult",
    "apply_renames",
    "find_directives",
    "finalize_module",
    "hygiene_prefix",
    "make_error_body",
    "parse_module_items",
    "parse_statements",
    "rename_imports",
    "scan_directive",
    "transform_module",
    "transform_source",
]
