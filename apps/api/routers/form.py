"""
Form analysis endpoint.

Accepts an uploaded clip, runs the pose-based rules frame by frame and
stores the per-frame feedback with the overall verdict.
"""
import logging
import os
import tempfile

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from core.exceptions import BadRequestError
from models import FormAnalysis, User
from schemas import FormAnalysisResponse
from services.form_analysis import FormAnalysisError, FormAnalyzer, get_form_analyzer
from services.form_analysis.analyzer import ALLOWED_VIDEO_SUFFIXES, MAX_VIDEO_BYTES

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/form", tags=["form"])

UPLOAD_CHUNK_BYTES = 1024 * 1024


def _upload_suffix(filename: str) -> str:
    suffix = os.path.splitext(filename or "")[1].lower()
    if suffix not in ALLOWED_VIDEO_SUFFIXES:
        raise BadRequestError("Only .mp4 and .mov videos are supported")
    return suffix


def _save_upload(video: UploadFile, out) -> None:
    written = 0
    while True:
        chunk = video.file.read(UPLOAD_CHUNK_BYTES)
        if not chunk:
            return
        written += len(chunk)
        if written > MAX_VIDEO_BYTES:
            raise FormAnalysisError("Video exceeds maximum size")
        out.write(chunk)


@router.post("/analyze", response_model=FormAnalysisResponse, status_code=status.HTTP_201_CREATED)
def analyze_form(
    video: UploadFile = File(...),
    exercise_type: str = Form(..., min_length=1),
    current_user: User = Depends(get_current_user),
    analyzer: FormAnalyzer = Depends(get_form_analyzer),
    db: Session = Depends(get_db),
):
    suffix = _upload_suffix(video.filename)

    fd, path = tempfile.mkstemp(prefix="form-upload-", suffix=suffix)
    try:
        with os.fdopen(fd, "wb") as out:
            _save_upload(video, out)
        report = analyzer.analyze(path, exercise_type.strip().lower())
    except FormAnalysisError as e:
        logger.warning(f"Form analysis failed for user {current_user.id}: {e}")
        raise BadRequestError(str(e))
    finally:
        os.remove(path)

    analysis = FormAnalysis(
        user_id=current_user.id,
        exercise_type=exercise_type.strip().lower(),
        results=report.results,
        verdict=report.verdict,
    )
    db.add(analysis)
    db.commit()
    db.refresh(analysis)

    logger.info(
        "Form analysis stored",
        extra={"extra_fields": {"user_id": str(current_user.id), "verdict": report.verdict, "frames": len(report.results)}},
    )
    return analysis
