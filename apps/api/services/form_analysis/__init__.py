"""
Exercise form analysis.

The default analyzer uses MediaPipe + OpenCV (optional `vision` extra).
Routers resolve it through get_form_analyzer() so tests and alternative
backends can substitute their own PoseEstimator.
"""

from typing import Optional
import logging

from core.exceptions import ServiceUnavailableError
from services.form_analysis.ai_fallback import ai_frame_feedback
from services.form_analysis.analyzer import FormAnalyzer, FormReport, evaluate_video_url
from services.form_analysis.base import FormAnalysisError, Keypoint, Pose, PoseEstimator

logger = logging.getLogger(__name__)

_default_analyzer: Optional[FormAnalyzer] = None


def get_form_analyzer() -> FormAnalyzer:
    global _default_analyzer
    if _default_analyzer is None:
        try:
            from services.form_analysis.mediapipe_backend import MediaPipePoseEstimator, extract_frames
        except ImportError as e:
            logger.error(f"Form analysis backend not installed: {e}")
            raise ServiceUnavailableError("Form analysis is not available") from e
        _default_analyzer = FormAnalyzer(MediaPipePoseEstimator(), extract_frames, no_pose_fallback=ai_frame_feedback)
    return _default_analyzer


def get_optional_form_analyzer() -> Optional[FormAnalyzer]:
    """Like get_form_analyzer(), but None instead of 503 when the backend is missing."""
    try:
        return get_form_analyzer()
    except ServiceUnavailableError:
        return None


__all__ = [
    "FormAnalysisError",
    "FormAnalyzer",
    "FormReport",
    "Keypoint",
    "Pose",
    "PoseEstimator",
    "evaluate_video_url",
    "get_form_analyzer",
    "get_optional_form_analyzer",
]
