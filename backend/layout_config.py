"""
Layout Config - Tunable thresholds and toggles for layout analysis

Persisted by the plugin in client storage under LAYOUT_CONFIG_STORAGE_KEY.
Stored blobs from older plugin builds may be partial; merge_with_defaults()
always returns a complete, validated config.
"""

import logging
from typing import Any, Dict, Optional

from pydantic import Field, ValidationError

from scene_graph import CamelModel

logger = logging.getLogger(__name__)

LAYOUT_CONFIG_STORAGE_KEY = "layoutConfig"


class LayoutChecks(CamelModel):
    corner_constraint: bool = True
    edge_constraint: bool = True
    sibling_fill: bool = True
    wide_tall: bool = True
    full_bleed: bool = True
    centered_not_center: bool = True


class LayoutConfig(CamelModel):
    # Gap below (parent dimension × ratio) counts as "near" that edge
    edge_proximity_ratio: float = Field(default=0.15, ge=0.05, le=0.40)
    # Fraction of inner parent width/height that makes a node a fill candidate
    fill_ratio: float = Field(default=0.70, ge=0.40, le=0.95)
    # Fraction on both axes that makes a node full-bleed
    full_bleed_ratio: float = Field(default=0.80, ge=0.50, le=0.99)
    center_tolerance_px: float = Field(default=6, ge=1, le=32)
    # Only report nodes whose constraints/sizing were never touched
    only_defaults: bool = False
    checks: LayoutChecks = Field(default_factory=LayoutChecks)


DEFAULT_LAYOUT_CONFIG = LayoutConfig()


def merge_with_defaults(stored: Optional[Dict[str, Any]]) -> LayoutConfig:
    """Overlay a partial/outdated stored config on the defaults.

    Unknown keys are dropped; the nested `checks` block is merged key by key so
    a newly added toggle keeps its default. Raises pydantic ValidationError when
    a stored value is out of range.
    """
    merged = DEFAULT_LAYOUT_CONFIG.to_payload()
    if isinstance(stored, dict):
        stored_checks = stored.get("checks")
        merged.update({k: v for k, v in stored.items() if k != "checks"})
        if isinstance(stored_checks, dict):
            merged["checks"] = {**merged["checks"], **stored_checks}
    return LayoutConfig.model_validate(merged)


class LayoutConfigStore:
    """Async load/save of the layout config through the plugin's client storage.

    `communicator` is a FigmaCommunicator (or anything exposing its
    client_storage_get / client_storage_set coroutines).
    """

    def __init__(self, communicator, key: str = LAYOUT_CONFIG_STORAGE_KEY):
        self.communicator = communicator
        self.key = key

    async def load(self) -> LayoutConfig:
        try:
            stored = await self.communicator.client_storage_get(self.key)
        except Exception as e:
            logger.warning(f"⚠️ Could not read layout config, using defaults: {e}")
            return LayoutConfig()

        try:
            config = merge_with_defaults(stored)
        except ValidationError as e:
            logger.warning(f"⚠️ Stored layout config is invalid, using defaults: {e.error_count()} error(s)")
            return LayoutConfig()
        logger.info(f"📥 Layout config loaded (stored={'yes' if stored else 'no'})")
        return config

    async def save(self, config: LayoutConfig | Dict[str, Any]) -> LayoutConfig:
        if not isinstance(config, LayoutConfig):
            config = merge_with_defaults(config)
        await self.communicator.client_storage_set(self.key, config.to_payload())
        logger.info("💾 Layout config saved")
        return config

    async def reset(self) -> LayoutConfig:
        return await self.save(LayoutConfig())
