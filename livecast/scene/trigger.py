import re
from typing import Optional

from loguru import logger

from catalog.store import Catalog
from scene.base import SceneController


class SceneTrigger:
    """Switches the broadcast scene when chat mentions a catalog product.

    Matching is a case-insensitive substring check against each product name
    and its numbered alias ("item 2" for the second product). The first
    matching product, in catalog order, wins; products without a scene stop
    the scan without switching.
    """

    def __init__(self, controller: Optional[SceneController], item_alias: str = "item"):
        self.controller = controller
        self.item_alias = item_alias.lower()

    def match(self, message: str, catalog: Catalog):
        lower = message.lower()
        for number, product in enumerate(catalog.products, start=1):
            name = product.name.strip().lower()
            alias = rf"\b{re.escape(self.item_alias)} {number}\b"
            if (name and name in lower) or re.search(alias, lower):
                return product
        return None

    async def maybe_switch(self, message: str, catalog: Catalog) -> Optional[str]:
        """Returns the scene switched to, or None."""
        if self.controller is None:
            return None

        product = self.match(message, catalog)
        if product is None or not product.scene:
            return None

        try:
            switched = await self.controller.switch_scene(product.scene)
        except Exception as e:
            logger.error("[SCENE] Scene switch for '{}' failed: {}", product.name, e)
            return None

        if not switched:
            logger.warning("[SCENE] Could not switch to scene '{}'", product.scene)
            return None
        return product.scene
