"""MediaPipe Pose estimator and OpenCV frame sampling (installed with the `vision` extra)."""

from typing import Any, List, Optional
import logging
import threading

import cv2
import mediapipe as mp

from services.form_analysis.base import FormAnalysisError, Keypoint, Pose, PoseEstimator

logger = logging.getLogger(__name__)

# MediaPipe BlazePose landmark index -> COCO keypoint name
LANDMARK_NAMES = {
    0: "nose",
    2: "left_eye",
    5: "right_eye",
    7: "left_ear",
    8: "right_ear",
    11: "left_shoulder",
    12: "right_shoulder",
    13: "left_elbow",
    14: "right_elbow",
    15: "left_wrist",
    16: "right_wrist",
    23: "left_hip",
    24: "right_hip",
    25: "left_knee",
    26: "right_knee",
    27: "left_ankle",
    28: "right_ankle",
}


class MediaPipePoseEstimator(PoseEstimator):
    def __init__(self, model_complexity: int = 1, min_detection_confidence: float = 0.5):
        self._pose = mp.solutions.pose.Pose(
            static_image_mode=True,
            model_complexity=model_complexity,
            min_detection_confidence=min_detection_confidence,
        )
        # The graph is stateful and not safe to share across request threads
        self._lock = threading.Lock()

    def estimate(self, frame: Any) -> Optional[Pose]:
        height, width = frame.shape[:2]
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        with self._lock:
            results = self._pose.process(rgb)

        if not results.pose_landmarks:
            return None

        landmarks = results.pose_landmarks.landmark
        return Pose(keypoints=[
            Keypoint(
                name=name,
                x=landmarks[index].x * width,
                y=landmarks[index].y * height,
                score=float(landmarks[index].visibility),
            )
            for index, name in LANDMARK_NAMES.items()
        ])


def extract_frames(video_path: str, count: int) -> List[Any]:
    """Decode `count` frames spread evenly across the clip."""
    cap = cv2.VideoCapture(video_path)
    if not cap.isOpened():
        raise FormAnalysisError("Could not open video")

    try:
        total = int(cap.get(cv2.CAP_PROP_FRAME_COUNT))
        if total <= 0:
            raise FormAnalysisError("Video contains no frames")

        indices = sorted({int(i * total / count) for i in range(count)})
        frames = []
        for index in indices:
            cap.set(cv2.CAP_PROP_POS_FRAMES, index)
            ok, frame = cap.read()
            if ok:
                frames.append(frame)
        logger.debug(f"Sampled {len(frames)} of {total} frames from {video_path}")
        return frames
    finally:
        cap.release()
