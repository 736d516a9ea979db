"""Validated executable manifest schema."""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from manifest_sync.manifest.rules import Rule


class ValidatedManifest(BaseModel):
    """Executable manifest after normalization.

    Guarantees, once built by the validator:
    - default_hpc is one of supported_hpc
    - every rule has a default; integer rules satisfy min <= default <= max
      with a positive step; option rules list their default
    """

    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "example": {
                "name": "hello world",
                "container": "python",
                "connector": None,
                "pre_processing_stage": "python setup.py",
                "execution_stage": "python main.py",
                "post_processing_stage": None,
                "description": "none",
                "estimated_runtime": "unknown",
                "supported_hpc": ["keeling_community"],
                "default_hpc": "keeling_community",
                "repository": "https://github.com/cybergis/cybergis-compute-hello-world.git",
                "require_upload_data": False,
                "slurm_input_rules": {
                    "time": {"type": "integer", "default_value": 10, "min": 0, "max": 20, "step": 1, "unit": "Minutes"}
                },
                "param_rules": {
                    "input_a": {"type": "string_option", "default_value": "foo", "options": ["foo", "bar"]}
                },
            }
        },
    )

    name: Optional[str] = None
    container: Optional[str] = None
    connector: Optional[str] = None
    pre_processing_stage: Optional[Any] = Field(default=None, description="Opaque stage descriptor")
    execution_stage: Optional[Any] = Field(default=None, description="Opaque stage descriptor")
    post_processing_stage: Optional[Any] = Field(default=None, description="Opaque stage descriptor")
    description: str = "none"
    estimated_runtime: Union[str, int, float] = "unknown"
    supported_hpc: List[str] = Field(..., min_length=1)
    default_hpc: str
    repository: str
    require_upload_data: bool = False
    slurm_input_rules: Dict[str, Rule] = Field(default_factory=dict)
    param_rules: Dict[str, Rule] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_default_hpc(self) -> "ValidatedManifest":
        if self.default_hpc not in self.supported_hpc:
            raise ValueError(f"default_hpc '{self.default_hpc}' is not in supported_hpc")
        return self

    def to_dict(self) -> dict:
        """Convert to a JSON-compatible dictionary."""
        return self.model_dump(mode="json")
