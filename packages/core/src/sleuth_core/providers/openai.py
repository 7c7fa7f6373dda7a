from __future__ import annotations

try:
    from openai import AsyncOpenAI as _AsyncOpenAI
except ImportError:
    _AsyncOpenAI = None  # type: ignore[assignment,misc]

from sleuth_core.providers.base import BaseReviewer


class OpenAIReviewer(BaseReviewer):
    MODEL = "gpt-4o"
    # temperature=0.2 for OpenAI — lower than Anthropic's 0.3 to lean toward
    # more deterministic, structured JSON output from GPT-4o.
    TEMPERATURE = 0.2

    def __init__(self, api_key: str, model: str | None = None):
        if _AsyncOpenAI is None:
            raise ImportError(
                "The 'openai' package is required for this provider. " "Install it with: pip install 'sleuth[openai]'"
            )
        self.client = _AsyncOpenAI(api_key=api_key)
        self.model = model or self.MODEL

    async def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""
