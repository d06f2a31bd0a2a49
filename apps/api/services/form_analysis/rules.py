"""
Fixed keypoint rules for exercise form.

Two independent outputs:
- per-frame coaching feedback for a named exercise (evaluate_pose)
- a coarse pass/fail/flagged verdict over a whole clip, based only on
  how many frames contain a clearly visible body (verdict_from_counts)
"""

from typing import Dict, Optional

from services.form_analysis.base import Keypoint, Pose

MIN_KEYPOINTS = 10
MIN_VISIBLE_KEYPOINTS = 8
VISIBILITY_THRESHOLD = 0.4

PASS_RATIO = 0.7
FAIL_RATIO = 0.4

GOOD_SCORE = 9
WEAK_SCORE = 5

# Max vertical elbow-to-wrist distance (px) at the bottom of a push-up
PUSH_UP_MAX_ELBOW_DROP = 50

SQUAT_TYPES = ("squat", "back squat", "front squat")
PUSH_UP_TYPES = ("push-up", "pushup", "push up")
DEADLIFT_TYPES = ("deadlift",)


def is_pose_valid(pose: Optional[Pose]) -> bool:
    if pose is None or len(pose.keypoints) < MIN_KEYPOINTS:
        return False
    visible = [kp for kp in pose.keypoints if kp.score > VISIBILITY_THRESHOLD]
    return len(visible) >= MIN_VISIBLE_KEYPOINTS


def verdict_from_counts(passed: int, failed: int) -> str:
    total = passed + failed
    if total == 0:
        return "flagged"
    ratio = passed / total
    if ratio > PASS_RATIO:
        return "pass"
    if ratio < FAIL_RATIO:
        return "fail"
    return "flagged"


def _side(keypoints: Dict[str, Keypoint], joint: str) -> Optional[Keypoint]:
    # Left side wins when both are present.
    return keypoints.get(f"left_{joint}") or keypoints.get(f"right_{joint}")


def evaluate_squat(keypoints: Dict[str, Keypoint]) -> Dict:
    hip = _side(keypoints, "hip")
    knee = _side(keypoints, "knee")
    if not hip or not knee:
        return {"status": "Insufficient keypoints for squat evaluation."}

    deep = hip.y > knee.y
    return {
        "rep_score": GOOD_SCORE if deep else WEAK_SCORE,
        "depth": "Good depth" if deep else "Shallow squat",
        "comment": "Strong squat depth and control." if deep else "Aim for deeper squat range.",
    }


def evaluate_push_up(keypoints: Dict[str, Keypoint]) -> Dict:
    wrist = _side(keypoints, "wrist")
    elbow = _side(keypoints, "elbow")
    shoulder = _side(keypoints, "shoulder")
    if not wrist or not elbow or not shoulder:
        return {"status": "Insufficient keypoints for push-up evaluation."}

    deep = abs(elbow.y - wrist.y) < PUSH_UP_MAX_ELBOW_DROP
    return {
        "rep_score": GOOD_SCORE if deep else WEAK_SCORE,
        "comment": "Good push-up depth and tempo." if deep else "Lower further to improve range of motion.",
    }


def evaluate_deadlift(keypoints: Dict[str, Keypoint]) -> Dict:
    hip = _side(keypoints, "hip")
    knee = _side(keypoints, "knee")
    ankle = _side(keypoints, "ankle")
    if not hip or not knee or not ankle:
        return {"status": "Insufficient keypoints for deadlift evaluation."}

    neutral_spine = hip.y < knee.y
    return {
        "rep_score": GOOD_SCORE if neutral_spine else WEAK_SCORE,
        "comment": "Solid deadlift posture." if neutral_spine else "Maintain flatter back during pull.",
    }


def is_supported_exercise(exercise_type: str) -> bool:
    name = exercise_type.strip().lower()
    return name in SQUAT_TYPES or name in PUSH_UP_TYPES or name in DEADLIFT_TYPES


def evaluate_pose(pose: Optional[Pose], exercise_type: str) -> Dict:
    if pose is None or not pose.keypoints:
        return {"status": "No pose detected."}

    keypoints = pose.by_name()
    name = exercise_type.strip().lower()
    if name in SQUAT_TYPES:
        return evaluate_squat(keypoints)
    if name in PUSH_UP_TYPES:
        return evaluate_push_up(keypoints)
    if name in DEADLIFT_TYPES:
        return evaluate_deadlift(keypoints)
    return {"status": "Unsupported exercise type for direct pose evaluation."}
