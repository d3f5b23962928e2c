"""Google Gemini streaming provider built on the google-genai SDK."""

from __future__ import annotations

from collections.abc import AsyncIterator

from google import genai
from google.genai import types

from streamchat.llm.base import ProviderTurn
from streamchat.models import DEFAULT_MODEL


class GeminiProvider:
    name = "gemini"

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL):
        self.client = genai.Client(api_key=api_key)
        self.model = model

    async def aclose(self) -> None:
        """Release the SDK's async HTTP transport."""
        await self.client.aio.aclose()

    async def stream_reply(self, turn: ProviderTurn) -> AsyncIterator[str]:
        history = [
            types.Content(role=entry.role, parts=[types.Part(text=entry.text)])
            for entry in turn.history
        ]
        config = (
            types.GenerateContentConfig(system_instruction=turn.system_instruction)
            if turn.system_instruction
            else None
        )

        chat = self.client.aio.chats.create(
            model=self.model, history=history, config=config
        )
        async for chunk in await chat.send_message_stream(turn.message):
            yield chunk.text or ""
