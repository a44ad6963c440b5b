"""
Forwarding of chat and audio prompts to the locally hosted generation model
"""

import logging
from typing import Optional

import httpx

from voice_intake.core.config import DEFAULT_AUDIO_PROMPT, RelaySettings
from voice_intake.voice.errors import RelayUnreachableError

logger = logging.getLogger(__name__)


def build_prompt(
    message: Optional[str],
    audio_base64: Optional[str],
    audio_prompt: str = DEFAULT_AUDIO_PROMPT
) -> Optional[str]:
    """
    Prompt for the model: audio takes priority over the text message.

    Returns None when neither was provided.
    """
    if audio_base64:
        return f"{audio_prompt}{audio_base64}"
    return message or None


class ModelForwarder:
    """Posts prompts to an Ollama-style generate endpoint"""

    def __init__(
        self,
        model_url: str,
        model: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.model_url = model_url
        self.model = model
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, relay: RelaySettings) -> "ModelForwarder":
        return cls(model_url=relay.model_url, model=relay.model, timeout=relay.timeout)

    async def generate(self, prompt: str) -> str:
        """Return the model's trimmed response text"""
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.model_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error calling model at {self.model_url}: {e}")
            raise RelayUnreachableError("relay", f"Unable to reach AI model: {e}") from e

        if not isinstance(data, dict):
            raise RelayUnreachableError("relay", "Unable to reach AI model: malformed response")

        return str(data.get("response") or "").strip()
