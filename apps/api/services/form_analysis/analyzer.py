"""
Video -> verdict pipeline.

FormAnalyzer samples a fixed number of frames, runs the configured
PoseEstimator on each, and applies the rules in rules.py. The estimator
and the frame extractor are injected so the ML backend can be swapped
(or faked in tests) without touching the rules.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse
import logging
import os
import tempfile

import requests

from core.config import settings
from services.form_analysis.base import FormAnalysisError, Pose, PoseEstimator
from services.form_analysis.rules import evaluate_pose, is_pose_valid, verdict_from_counts

logger = logging.getLogger(__name__)

DEFAULT_FRAME_COUNT = 10
ALLOWED_VIDEO_SUFFIXES = (".mp4", ".mov")
MAX_VIDEO_BYTES = 200 * 1024 * 1024

FrameExtractor = Callable[[str, int], List[Any]]
# exercise_type -> feedback for a frame with no pose, or None to keep the rule-based status
NoPoseFallback = Callable[[str], Optional[Dict]]


@dataclass
class FormReport:
    verdict: str
    results: List[Dict] = field(default_factory=list)


class FormAnalyzer:
    def __init__(
        self,
        estimator: PoseEstimator,
        frame_extractor: FrameExtractor,
        frame_count: int = DEFAULT_FRAME_COUNT,
        no_pose_fallback: Optional[NoPoseFallback] = None,
    ) -> None:
        self.estimator = estimator
        self.frame_extractor = frame_extractor
        self.frame_count = frame_count
        self.no_pose_fallback = no_pose_fallback

    def _estimate_all(self, video_path: str) -> List[Optional[Pose]]:
        """
        One entry per sampled frame. Estimator failures become an exception
        object in that slot so callers can treat them as bad frames.
        """
        frames = self.frame_extractor(video_path, self.frame_count)
        poses: List[Any] = []
        for frame in frames:
            try:
                poses.append(self.estimator.estimate(frame))
            except Exception as e:
                logger.warning(f"Pose estimation failed on frame: {e}")
                poses.append(e)
        return poses

    def evaluate(self, video_path: str) -> str:
        """Coarse verdict used for wager verification. Never raises."""
        try:
            poses = self._estimate_all(video_path)
        except Exception as e:
            logger.warning(f"Frame extraction failed for {video_path}: {e}")
            return "flagged"

        passed = sum(1 for p in poses if isinstance(p, Pose) and is_pose_valid(p))
        return verdict_from_counts(passed, len(poses) - passed)

    def analyze(self, video_path: str, exercise_type: str) -> FormReport:
        """Per-frame coaching feedback plus the overall verdict."""
        try:
            poses = self._estimate_all(video_path)
        except FormAnalysisError:
            raise
        except Exception as e:
            raise FormAnalysisError(f"Could not read video: {e}") from e

        results = []
        passed = 0
        fallback: Optional[Dict] = None
        fallback_done = False
        for index, pose in enumerate(poses):
            if isinstance(pose, Exception):
                feedback = {"status": "Frame error", "comment": "Error analyzing frame."}
            elif (pose is None or not pose.keypoints) and self.no_pose_fallback is not None:
                # Same prompt for every empty frame, so ask once per clip
                if not fallback_done:
                    fallback = self.no_pose_fallback(exercise_type)
                    fallback_done = True
                feedback = dict(fallback) if fallback else evaluate_pose(pose, exercise_type)
            else:
                feedback = evaluate_pose(pose, exercise_type)
                if is_pose_valid(pose):
                    passed += 1
            results.append({"frame": index, "feedback": feedback})

        return FormReport(verdict=verdict_from_counts(passed, len(poses) - passed), results=results)


def _video_suffix(url: str) -> str:
    path = urlparse(url).path.lower()
    for suffix in ALLOWED_VIDEO_SUFFIXES:
        if path.endswith(suffix):
            return suffix
    return ".mp4"


def download_video(url: str) -> str:
    """Stream a remote clip into a temp file and return its path."""
    fd, path = tempfile.mkstemp(prefix="form-", suffix=_video_suffix(url))
    written = 0
    try:
        with os.fdopen(fd, "wb") as out:
            with requests.get(url, stream=True, timeout=settings.EXTERNAL_API_TIMEOUT) as resp:
                resp.raise_for_status()
                for chunk in resp.iter_content(chunk_size=1024 * 1024):
                    written += len(chunk)
                    if written > MAX_VIDEO_BYTES:
                        raise FormAnalysisError("Video exceeds maximum size")
                    out.write(chunk)
    except Exception:
        os.remove(path)
        raise
    return path


def evaluate_video_url(url: str, analyzer: Optional[FormAnalyzer]) -> str:
    """Download and evaluate a submission clip. Any failure yields 'flagged'."""
    if analyzer is None:
        logger.warning("Form analyzer unavailable; flagging submission for review")
        return "flagged"

    try:
        path = download_video(url)
    except Exception as e:
        logger.warning(f"Could not download submission video: {e}", extra={"extra_fields": {"video_url": url}})
        return "flagged"

    try:
        return analyzer.evaluate(path)
    finally:
        os.remove(path)
