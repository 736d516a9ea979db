"""Executable manifests: rule models, validation and caching."""
from manifest_sync.manifest.cache import CacheEntry, ManifestCache
from manifest_sync.manifest.rules import (
    SLURM_RULE_CATALOG,
    IntegerRule,
    RuleType,
    StringInputRule,
    StringOptionRule,
)
from manifest_sync.manifest.schema import ValidatedManifest
from manifest_sync.manifest.validator import ManifestValidator, normalize

__all__ = [
    "CacheEntry",
    "IntegerRule",
    "ManifestCache",
    "ManifestValidator",
    "RuleType",
    "SLURM_RULE_CATALOG",
    "StringInputRule",
    "StringOptionRule",
    "ValidatedManifest",
    "normalize",
]
