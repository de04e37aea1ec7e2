import json
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import BaseModel, Field


class Product(BaseModel):
    id: Optional[int] = None
    name: str = ""
    price: Optional[float] = 0
    description: str = ""
    stock: int = 0
    scene: str = ""  # Scene to switch to when viewers ask about this product


class Promotion(BaseModel):
    code: str
    description: str = ""
    discount: float = 0
    is_active: bool = True


class IdleAudio(BaseModel):
    filename: str
    original_name: str = ""
    description: str = ""
    is_active: bool = True

    @property
    def display_name(self) -> str:
        return self.original_name or self.filename


class Catalog(BaseModel):
    store_name: str = "Online Store"
    products: list[Product] = Field(default_factory=list)
    promotions: list[Promotion] = Field(default_factory=list)
    idle_audio: list[IdleAudio] = Field(default_factory=list)


class CatalogStore:
    """Read-only view of the product catalog and idle audio list.

    The file is re-read on every call so edits show up while a session runs.
    """

    def __init__(self, data_dir: Path, filename: str = "catalog.json"):
        self.path = data_dir / filename
        self.idle_audio_dir = data_dir / "audio" / "idle"

    def _load(self) -> Catalog:
        if not self.path.exists():
            return Catalog()
        try:
            return Catalog(**json.loads(self.path.read_text()))
        except Exception as e:
            logger.warning("Could not load catalog from {}: {}. Using empty catalog.", self.path, e)
            return Catalog()

    def get_catalog(self) -> Catalog:
        """Catalog with blank-named products and inactive promotions removed."""
        catalog = self._load()
        catalog.products = [p for p in catalog.products if p.name and p.name.strip()]
        catalog.promotions = [p for p in catalog.promotions if p.is_active]
        return catalog

    def get_active_idle_audio(self) -> list[IdleAudio]:
        return [a for a in self._load().idle_audio if a.is_active]
