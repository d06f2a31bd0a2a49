"""
Pose types and the estimator interface.

Keypoint names follow the 17-point COCO/MoveNet convention
(left_hip, right_knee, ...). Coordinates are in frame pixels with y
growing downwards.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


class FormAnalysisError(Exception):
    """Video could not be decoded or sampled."""


@dataclass(frozen=True)
class Keypoint:
    name: str
    x: float
    y: float
    score: float


@dataclass
class Pose:
    keypoints: List[Keypoint] = field(default_factory=list)

    def by_name(self) -> Dict[str, Keypoint]:
        return {kp.name: kp for kp in self.keypoints}


class PoseEstimator(ABC):
    """Single-person pose estimation on one decoded frame."""

    @abstractmethod
    def estimate(self, frame: Any) -> Optional[Pose]:
        """Return the detected pose, or None when nobody is in frame."""
        raise NotImplementedError
