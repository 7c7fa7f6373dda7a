from __future__ import annotations

from sleuth_core.providers.base import BaseReviewer


class AnthropicReviewer(BaseReviewer):
    MODEL = "claude-sonnet-4-20250514"
    # temperature=0.3 for Anthropic — slightly higher than OpenAI's 0.2 to
    # allow more natural phrasing in review comments while keeping the output
    # deterministic enough for consistent JSON structure.
    TEMPERATURE = 0.3

    def __init__(self, api_key: str, model: str | None = None):
        try:
            from anthropic import AsyncAnthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'sleuth[anthropic]'"
            )
        self.client = AsyncAnthropic(api_key=api_key)
        self.model = model or self.MODEL

    async def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        # Imported inside the method because the anthropic package is optional;
        # __init__ already validated it is installed before we reach here.
        from anthropic.types import TextBlock

        response = await self.client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()
