"""Run-time configuration for the feature matching pipeline."""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Mapping


class ExtractorType(str, Enum):
    """Keypoint extractor that feeds the matcher."""

    SUPERPOINT = "superpoint"
    DISK = "disk"


@dataclass
class Configuration:
    """Model paths and options shared by the runners."""

    lightglue_path: str = ""
    extractor_path: str = ""
    extractor_type: ExtractorType = ExtractorType.SUPERPOINT
    is_end_to_end: bool = True
    gray_scale: bool = False
    image_size: int = 512
    threshold: float = 0.0
    device: str = ""
    viz: bool = False

    def __post_init__(self) -> None:
        self.extractor_type = ExtractorType(self.extractor_type)
        self.image_size = int(self.image_size)
        self.threshold = float(self.threshold)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "Configuration":
        """Build a configuration from a mapping of field names to values."""
        known = {field.name for field in fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**dict(mapping))