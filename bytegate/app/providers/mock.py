"""Mock provider for development and tests.

This provider answers without making external API calls. Enable it by
setting BYTEGATE_MOCK_PROVIDER=true.
"""

import asyncio
from collections import deque
from typing import Optional

from bytegate.app.providers.base import BaseProvider

# Recent prompts kept for inspection; the provider is a process-wide singleton
MAX_RECORDED_PROMPTS = 100


class MockProvider(BaseProvider):
    """Mock AI provider returning canned ByteBot answers."""

    name = "mock"

    def __init__(self, delay: float = 0.0, reply: Optional[str] = None):
        super().__init__(base_url="http://mock.provider", api_key="mock-key")
        self.delay = delay
        self.reply = reply
        self.prompts: deque[str] = deque(maxlen=MAX_RECORDED_PROMPTS)

    def _generate_content(self, question: str) -> str:
        lower = question.lower()
        if any(kw in lower for kw in ("hello", "hi ")):
            return "Hi! I'm ByteBot. Ask me anything about BrainBytes!"
        if any(kw in lower for kw in ("gem", "heart", "shop")):
            return "You earn gems by completing lessons and can spend them in the Shop, for example to refill hearts."
        if any(kw in lower for kw in ("course", "lesson", "unit")):
            return "Courses are split into units, and units into lessons with quick quizzes. Pick a course to get started!"
        return "I'm ByteBot, your BrainBytes helper. Keep learning, you're doing great!"

    async def generate_text(self, prompt: str) -> Optional[str]:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.reply is not None:
            return self.reply
        # The question follows the system prompt
        question = prompt.rsplit("\n", 1)[-1]
        return self._generate_content(question)
