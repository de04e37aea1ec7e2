from loguru import logger

from llm.base import BaseLLM, CompletionError


class GeminiProvider(BaseLLM):
    """Google Gemini provider."""

    def __init__(self, api_key: str, model: str = "gemini-1.5-flash"):
        self.api_key = api_key
        self.model = model
        self._client = None
        self._system_msg = None

    def _ensure_client(self, system_msg: str):
        # Gemini takes the system prompt on the model, so rebuild when it changes
        if self._client is None or system_msg != self._system_msg:
            import google.generativeai as genai
            genai.configure(api_key=self.api_key)
            self._client = genai.GenerativeModel(
                self.model, system_instruction=system_msg or None
            )
            self._system_msg = system_msg

    async def complete(self, messages, max_tokens=300, temperature=0.8, top_p=0.9) -> str:
        if not self.api_key:
            raise CompletionError("Gemini API key not configured.")

        # Convert OpenAI-style messages to Gemini format:
        # {"role": "user"/"model", "parts": [text]}
        system_msg = ""
        gemini_history = []
        for msg in messages:
            if msg["role"] == "system":
                system_msg = msg["content"]
            elif msg["role"] == "user":
                gemini_history.append({"role": "user", "parts": [msg["content"]]})
            elif msg["role"] == "assistant":
                gemini_history.append({"role": "model", "parts": [msg["content"]]})

        if not gemini_history:
            raise CompletionError("No user message to send to Gemini.")

        try:
            self._ensure_client(system_msg)
            chat = self._client.start_chat(history=gemini_history[:-1])
            response = await chat.send_message_async(
                gemini_history[-1]["parts"][0],
                generation_config={
                    "max_output_tokens": max_tokens,
                    "temperature": temperature,
                    "top_p": top_p,
                },
            )
            return response.text or ""
        except Exception as e:
            logger.error("Gemini completion error: {}", e)
            raise CompletionError(str(e)) from e
