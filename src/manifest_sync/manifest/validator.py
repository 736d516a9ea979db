"""Parse and normalize raw manifest documents."""
import json
import logging
from typing import Any, Dict

from pydantic import ValidationError

from manifest_sync.core.config import DEFAULT_HPC
from manifest_sync.core.errors import ManifestParseError
from manifest_sync.manifest.rules import normalize_param_rule, normalize_slurm_rule
from manifest_sync.manifest.schema import ValidatedManifest

logger = logging.getLogger(__name__)


class ManifestValidator:
    """Turns semi-trusted manifest JSON into a ValidatedManifest.

    Invalid rules are dropped or defaulted rather than rejected, so a
    manifest with one bad rule still yields a usable configuration. Only
    content that is not a JSON object, or whose top-level fields have the
    wrong shape, fails with ManifestParseError.
    """

    def __init__(self, default_hpc: str = DEFAULT_HPC):
        self.default_hpc = default_hpc

    def defaults(self, fallback_address: str) -> Dict[str, Any]:
        return {
            "name": None,
            "container": None,
            "connector": None,
            "pre_processing_stage": None,
            "execution_stage": None,
            "post_processing_stage": None,
            "description": "none",
            "estimated_runtime": "unknown",
            "supported_hpc": [self.default_hpc],
            "default_hpc": None,
            "repository": fallback_address,
            "require_upload_data": False,
            "slurm_input_rules": {},
            "param_rules": {},
        }

    def parse(self, raw_text: str) -> Dict[str, Any]:
        """Parse raw_text as a JSON object.

        Raises:
            ManifestParseError: If raw_text is not a JSON object
        """
        try:
            document = json.loads(raw_text)
        except (json.JSONDecodeError, TypeError) as e:
            raise ManifestParseError(f"Manifest is not valid JSON: {e}") from e

        if not isinstance(document, dict):
            raise ManifestParseError(
                f"Manifest must be a JSON object, got {type(document).__name__}"
            )
        return document

    def normalize(self, raw_text: str, fallback_address: str) -> ValidatedManifest:
        """Parse raw_text and normalize it into a ValidatedManifest.

        Args:
            raw_text: Content of manifest.json
            fallback_address: Repository address used when the manifest has none

        Raises:
            ManifestParseError: If the content is not a well-formed manifest
        """
        document = self.parse(raw_text)

        # Explicit nulls fall back to the defaults
        merged = self.defaults(fallback_address)
        merged.update({k: v for k, v in document.items() if v is not None})

        self._normalize_hpc(merged)
        merged["slurm_input_rules"] = self._normalize_rules(
            merged["slurm_input_rules"], "slurm_input_rules", normalize_slurm_rule
        )
        merged["param_rules"] = self._normalize_rules(
            merged["param_rules"], "param_rules", normalize_param_rule
        )

        try:
            return ValidatedManifest.model_validate(merged)
        except ValidationError as e:
            raise ManifestParseError(f"Manifest has malformed fields: {e}") from e

    def _normalize_hpc(self, merged: Dict[str, Any]) -> None:
        supported = merged["supported_hpc"]
        if isinstance(supported, str):
            supported = [supported]
        if not supported:
            supported = [self.default_hpc]
        merged["supported_hpc"] = supported
        if not isinstance(supported, list):
            return

        if not merged["default_hpc"]:
            merged["default_hpc"] = supported[0]
        elif merged["default_hpc"] not in supported:
            logger.warning(
                f"default_hpc '{merged['default_hpc']}' is not supported, using '{supported[0]}'"
            )
            merged["default_hpc"] = supported[0]

    def _normalize_rules(self, rules: Any, field: str, normalize_rule) -> Dict[str, Any]:
        if not isinstance(rules, dict):
            logger.warning(f"Ignoring {field}: expected an object, got {type(rules).__name__}")
            return {}

        normalized = {}
        for name, raw_rule in rules.items():
            rule = normalize_rule(name, raw_rule)
            if rule is not None:
                normalized[name] = rule
        return normalized


def normalize(raw_text: str, fallback_address: str) -> ValidatedManifest:
    """Normalize raw_text with the built-in default cluster."""
    return ManifestValidator().normalize(raw_text, fallback_address)
