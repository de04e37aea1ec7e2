from abc import ABC, abstractmethod
from typing import Optional


class SceneControlError(Exception):
    """The scene-control service could not be reached or refused a call."""


class SceneController(ABC):
    """Broadcast software that can switch between named scenes."""

    async def connect(self) -> bool:
        return True

    @abstractmethod
    async def switch_scene(self, name: str) -> bool:
        """Switch the live program to a scene. Returns False on failure."""
        ...

    @abstractmethod
    async def list_scenes(self) -> list[str]:
        ...

    @abstractmethod
    async def get_current_scene(self) -> Optional[str]:
        ...

    async def disconnect(self) -> None:
        pass
