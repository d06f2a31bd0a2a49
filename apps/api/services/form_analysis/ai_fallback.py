"""
Text-only form feedback for frames where no pose was found.

The coach model gets the exercise and a one-line rep transcript instead of
keypoints. Used only when OpenAI is configured.
"""

from typing import Dict, Optional
import logging

from core.config import settings
from services import openai_chat

logger = logging.getLogger(__name__)

NO_POSE_TRANSCRIPT = "Pose detection unavailable for this frame."
FALLBACK_FAILED = {"status": "Fallback AI analysis failed.", "comment": "Unable to analyze frame."}
FALLBACK_INCOMPLETE = {"status": "Fallback analysis incomplete."}

TRANSCRIPT_PROMPT = """You are a Certified Strength & Conditioning Specialist evaluating exercise form.

Exercise: {exercise}
Reps Performed: {reps}

Rep-by-Rep Transcript (observations):
{transcript}

For each rep give a score from 1 to 10, strengths, corrections and an urgency
level (Low, Medium, High). Then give an overall score, the top 3 corrections
and 3 short coaching cues. Be clinical and concise. If the transcript does not
support a judgement, say "Insufficient data for this rep."
"""


def build_transcript_prompt(exercise: str, reps: int, transcript: str) -> str:
    return TRANSCRIPT_PROMPT.format(exercise=exercise.strip(), reps=reps, transcript=transcript.strip())


def ai_frame_feedback(exercise_type: str) -> Optional[Dict]:
    """
    Feedback dict for a frame with no pose, or None when AI is not configured.

    Never raises: any model failure yields FALLBACK_FAILED.
    """
    if not settings.OPENAI_API_KEY:
        return None

    prompt = build_transcript_prompt(exercise_type, 1, NO_POSE_TRANSCRIPT)
    try:
        result = openai_chat.generate_chat_completion([{"role": "user", "content": prompt}])
    except Exception as e:
        logger.warning(f"Fallback form analysis failed for {exercise_type}: {e}")
        return dict(FALLBACK_FAILED)

    if not result["reply"]:
        return dict(FALLBACK_INCOMPLETE)
    return {"status": "AI fallback analysis.", "comment": result["reply"]}
