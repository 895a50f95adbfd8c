"""Placement request models.

A PlacementRequest describes one desired block insertion: which definition,
where it goes, at what uniform scale, and which property values must be
written into it. Requests with the same definition and the same override list
share one configured template (see blockplace.core.template_cache).

Batch files (YAML or JSON) hold a list of requests:

    requests:
      - definition: DOOR
        position: [10, 5]
        scale: 2
        overrides:
          - {name: TAG, value: D-01}
          - {name: Width, value: 900, required: true}
"""

import json
import logging
from pathlib import Path
from typing import Any, Hashable, List, Tuple, Union

import yaml
from ezdxf.math import Vec3
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)


class BatchLoadError(Exception):
    """Raised when a placement batch file cannot be loaded."""
    pass


class PropertyOverride(BaseModel):
    """A property value to write into a freshly instantiated template.

    Attributes:
        name: Property name (or name pattern when exact_match is False)
        value: Value to write; coerced by the target field's kind
        exact_match: Require the whole property name to match
        required: Report a failure as an error tied to the instance
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Property name or pattern")
    value: Any = Field(None, description="Value to write")
    exact_match: bool = Field(True, description="Anchor the name match at both ends")
    required: bool = Field(False, description="Failure is an error rather than a log entry")


class PlacementRequest(BaseModel):
    """One block insertion.

    Attributes:
        definition_id: Hashable identity of the block definition (block name for DXF)
        target_container: Host container for the placed instance; None uses
            the session's default container
        position: Insertion point; 2D points get z=0
        scale: Uniform scale, finite and > 0
        overrides: Ordered property values applied to the template
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    definition_id: Any = Field(
        ...,
        validation_alias=AliasChoices("definition_id", "definition"),
        description="Block definition identity",
    )
    target_container: Any = Field(None, description="Target container handle")
    position: Tuple[float, float, float] = Field((0.0, 0.0, 0.0), description="Insertion point")
    scale: float = Field(1.0, gt=0, allow_inf_nan=False, description="Uniform scale factor")
    overrides: List[PropertyOverride] = Field(default_factory=list, description="Property overrides")

    @field_validator("definition_id")
    @classmethod
    def _hashable_definition(cls, v: Any) -> Hashable:
        if v is None:
            raise ValueError("definition_id is required")
        try:
            hash(v)
        except TypeError:
            raise ValueError(f"definition_id must be hashable, got {type(v).__name__}")
        return v

    @field_validator("position", mode="before")
    @classmethod
    def _pad_position(cls, v: Any) -> Any:
        if isinstance(v, Vec3):
            return (v.x, v.y, v.z)
        if isinstance(v, (list, tuple)) and len(v) == 2:
            return (v[0], v[1], 0.0)
        return v

    @field_validator("overrides", mode="before")
    @classmethod
    def _overrides_from_mapping(cls, v: Any) -> Any:
        # {"TAG": "D-01"} shorthand keeps insertion order
        if isinstance(v, dict):
            return [{"name": name, "value": value} for name, value in v.items()]
        return v

    @property
    def point(self) -> Vec3:
        return Vec3(self.position)


def parse_requests(data: Any) -> List[PlacementRequest]:
    """
    Build requests from parsed batch data.

    Args:
        data: Either a list of request mappings or {"requests": [...]}

    Returns:
        List of PlacementRequest

    Raises:
        BatchLoadError: If the structure or a request is invalid
    """
    if isinstance(data, dict):
        data = data.get("requests")

    if not isinstance(data, list):
        raise BatchLoadError("Batch must be a list of requests or a mapping with a 'requests' list")

    requests = []
    for index, item in enumerate(data):
        try:
            requests.append(PlacementRequest.model_validate(item))
        except ValidationError as e:
            raise BatchLoadError(f"Invalid request #{index}: {e}") from e

    return requests


def load_requests(path: Union[str, Path]) -> List[PlacementRequest]:
    """
    Load a placement batch from a YAML or JSON file.

    Raises:
        BatchLoadError: If the file is missing, unparsable or invalid
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except FileNotFoundError:
        raise BatchLoadError(f"Batch file not found: {path}")
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise BatchLoadError(f"Invalid batch file {path}: {e}")

    requests = parse_requests(data)
    logger.info(f"Loaded {len(requests)} placement requests from {path}")
    return requests
