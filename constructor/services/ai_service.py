# constructor/services/ai_service.py
import asyncio
import logging
from typing import Any
from google.genai import types
import google.genai as genai
from constructor.core.prompts import build_system_instruction
from constructor.models.graph import ContextSource, Message

logger = logging.getLogger(__name__)

DEFAULT_CHAT_MODEL = "gemini-2.5-flash"


class MissingAPIKeyError(RuntimeError):
    def __init__(self):
        super().__init__("Missing GEMINI_API_KEY environment variable.")


class AIService:
    def __init__(self, api_key: str, model: str = DEFAULT_CHAT_MODEL):
        self.client = genai.Client(api_key=api_key) if api_key else None
        self.model = model

    async def generate_chat_response(
        self,
        message: str,
        history: list[Message],
        context_sources: list[ContextSource],
        system_instruction: str | None = None,
    ) -> str:
        """
        Produces the next model turn. Errors from the SDK propagate; the caller
        decides how a failure shows up in the conversation.
        """
        if self.client is None:
            raise MissingAPIKeyError()

        contents = [
            types.Content(role=turn.role, parts=[types.Part(text=turn.text)])
            for turn in history
        ]
        contents.append(types.Content(role="user", parts=[types.Part(text=message)]))

        generation_config = types.GenerateContentConfig(
            system_instruction=build_system_instruction(context_sources, system_instruction)
        )

        try:
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=self.model,
                contents=contents,
                config=generation_config
            )
        except Exception as e:
            logger.error("Gemini API error: %s", e)
            raise

        return self._extract_text(response)

    @staticmethod
    def _extract_text(response: Any) -> str:
        """
        Joins the visible text parts of the first candidate, skipping thought parts.
        Falls back to `response.text` when the candidate structure is unusable.
        """
        if response is None:
            return ""

        try:
            candidates = getattr(response, "candidates", None) or []
            for candidate in candidates:
                content = getattr(candidate, "content", None)
                parts = getattr(content, "parts", None) or []
                texts = []
                for part in parts:
                    if getattr(part, "thought", False):
                        logger.debug("Skipping thought part in candidate.")
                        continue
                    text_part = getattr(part, "text", None)
                    if text_part:
                        texts.append(text_part)
                        continue
                    inline_data = getattr(part, "inline_data", None)
                    inline_mime = getattr(inline_data, "mime_type", None) or ""
                    if inline_data and inline_mime.lower().startswith("text/"):
                        data = getattr(inline_data, "data", None)
                        if isinstance(data, bytes):
                            texts.append(data.decode("utf-8"))
                        elif data:
                            texts.append(str(data))
                if texts:
                    return "".join(texts)
        except Exception as exc:
            logger.debug("Falling back to response.text due to extraction error: %s", exc)

        return getattr(response, "text", "") or ""
