from loguru import logger


class ApiKeyPool:
    """Ordered, cyclic set of speech-service credentials.

    The cursor always points at a valid key. It only moves on rotate(), which
    the synthesizer calls after a quota/auth failure.
    """

    def __init__(self, keys: list[str]):
        self.keys = [k for k in keys if k]
        if not self.keys:
            raise ValueError("At least one speech API key is required")
        self.index = 0

    @property
    def current(self) -> str:
        return self.keys[self.index]

    def rotate(self) -> str:
        """Advance to the next key (wrapping) and return it."""
        self.index = (self.index + 1) % len(self.keys)
        logger.warning("[TTS] Rotated to API key #{} of {}", self.index + 1, len(self.keys))
        return self.current

    def __len__(self) -> int:
        return len(self.keys)

    @staticmethod
    def mask(key: str) -> str:
        return f"...{key[-4:]}" if len(key) > 4 else "****"
