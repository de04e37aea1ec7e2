from abc import ABC, abstractmethod
from typing import Optional

import httpx
from loguru import logger


class SpeechServiceError(Exception):
    """A hosted speech call failed. Carries the HTTP status when there was one."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SpeechService(ABC):
    """Hosted text-to-speech, billed per character."""

    @abstractmethod
    async def synthesize(self, text: str, api_key: str) -> bytes:
        """Return encoded audio bytes for text, authenticating with api_key."""
        ...

    async def close(self) -> None:
        pass


class ElevenLabsSpeechService(SpeechService):
    """ElevenLabs REST text-to-speech over httpx."""

    def __init__(
        self,
        voice_id: str,
        model_id: str = "eleven_multilingual_v2",
        output_format: str = "mp3_44100_128",
        voice_settings: dict | None = None,
        base_url: str = "https://api.elevenlabs.io/v1",
        timeout: float = 30.0,
    ):
        self.voice_id = voice_id
        self.model_id = model_id
        self.output_format = output_format
        self.voice_settings = voice_settings or {
            "stability": 0.5,
            "similarity_boost": 0.75,
            "style": 0.0,
            "use_speaker_boost": True,
        }
        self.base_url = base_url
        self.timeout = timeout
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url, timeout=httpx.Timeout(self.timeout)
            )
        return self._client

    async def synthesize(self, text: str, api_key: str) -> bytes:
        client = self._get_client()
        body = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": self.voice_settings,
        }

        try:
            response = await client.post(
                f"/text-to-speech/{self.voice_id}",
                json=body,
                params={"output_format": self.output_format},
                headers={"xi-api-key": api_key, "Accept": "audio/mpeg"},
            )
        except httpx.HTTPError as e:
            raise SpeechServiceError(f"ElevenLabs request failed: {e}") from e

        if response.status_code >= 400:
            raise SpeechServiceError(
                f"ElevenLabs error {response.status_code}: {self._error_detail(response)}",
                status_code=response.status_code,
            )

        logger.debug("[TTS] ElevenLabs returned {} bytes", len(response.content))
        return response.content

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        """ElevenLabs errors look like {"detail": {"status": ..., "message": ...}}."""
        try:
            data = response.json()
        except ValueError:
            return response.text[:200]
        detail = data.get("detail", "") if isinstance(data, dict) else data
        if isinstance(detail, dict):
            return f"{detail.get('status', '')} {detail.get('message', '')}".strip()
        return str(detail)

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
