from typing import Any, Dict, Optional

import httpx

from bytegate.app.providers.base import BaseProvider


class GeminiProvider(BaseProvider):
    """Google Gemini provider using the generateContent REST endpoint."""

    name = "gemini"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        model: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0
    ):
        super().__init__(base_url, api_key, http_client, timeout)
        self.model = model

    def _build_headers(self) -> Dict[str, str]:
        headers = super()._build_headers()
        headers["x-goog-api-key"] = self.api_key
        return headers

    @staticmethod
    def _extract_text(data: Dict[str, Any]) -> Optional[str]:
        """Pull candidates[0].content.parts[0].text out of a response body."""
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            return None
        return text if isinstance(text, str) and text else None

    async def generate_text(self, prompt: str) -> Optional[str]:
        url = self._get_endpoint_url(f"/models/{self.model}:generateContent")
        payload = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}

        async with self._client_context() as client:
            resp = await client.post(
                url, headers=self._build_headers(), json=payload, timeout=self.timeout
            )
            resp.raise_for_status()
            return self._extract_text(resp.json())
