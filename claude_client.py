"""Thin Claude API client used for classification-style prompts."""

import anthropic

from logger import logger


class ClaudeClient:
    """Claude API client returning plain text completions."""

    def __init__(self, api_key: str, model: str = "claude-sonnet-4-20250514", timeout: float = 20.0):
        self.client = anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)
        self.model = model

    async def complete(
        self,
        message: str,
        system: str,
        max_tokens: int = 512,
        temperature: float = 0.0
    ) -> str:
        """
        Send a single-turn message and return the concatenated text blocks.

        Args:
            message: User message
            system: System prompt
            max_tokens: Response token cap
            temperature: Sampling temperature (0 for deterministic answers)

        Returns:
            Response text, stripped

        Raises:
            anthropic.APIError: If the API call fails
        """
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system,
                messages=[{"role": "user", "content": message}]
            )
        except anthropic.APIError as e:
            logger.error(f"Claude API error: {e}")
            raise

        text_blocks = [b.text for b in response.content if b.type == "text"]
        return "\n".join(text_blocks).strip()


def create_claude_client() -> ClaudeClient | None:
    """Build a client from config, or None when no API key is configured."""
    from config import ANTHROPIC_API_KEY, CLAUDE_MODEL

    if not ANTHROPIC_API_KEY:
        logger.info("Claude API key not configured - semantic features disabled")
        return None
    return ClaudeClient(api_key=ANTHROPIC_API_KEY, model=CLAUDE_MODEL)
