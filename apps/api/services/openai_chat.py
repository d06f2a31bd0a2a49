"""OpenAI chat-completions proxy for the in-app AI coach."""

from typing import Dict, List, Optional
import logging

from openai import OpenAI

from core.config import settings
from core.exceptions import ServiceUnavailableError, UpstreamError

logger = logging.getLogger(__name__)


def _client() -> OpenAI:
    if not settings.OPENAI_API_KEY:
        raise ServiceUnavailableError("AI chat is not configured")
    return OpenAI(api_key=settings.OPENAI_API_KEY, timeout=settings.EXTERNAL_API_TIMEOUT)


def generate_chat_completion(messages: List[Dict[str, str]], model: Optional[str] = None) -> Dict[str, str]:
    client = _client()
    model = model or settings.OPENAI_CHAT_MODEL

    try:
        response = client.chat.completions.create(model=model, messages=messages)
        content = response.choices[0].message.content or ""
    except Exception as e:
        logger.error(f"OpenAI chat completion failed: {e}")
        raise UpstreamError("AI request failed")

    return {"reply": content.strip(), "model": model}
