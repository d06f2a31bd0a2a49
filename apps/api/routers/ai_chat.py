"""AI coach chat proxy."""
from fastapi import APIRouter, Depends

from core.auth import get_current_user
from models import User
from schemas import ChatRequest, ChatResponse
from services.openai_chat import generate_chat_completion

router = APIRouter(prefix="/v1/ai", tags=["ai"])


@router.post("/chat", response_model=ChatResponse)
def chat(
    payload: ChatRequest,
    current_user: User = Depends(get_current_user),
):
    messages = [m.model_dump() for m in payload.messages]
    return generate_chat_completion(messages, model=payload.model)
