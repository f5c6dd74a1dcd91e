from __future__ import annotations

from jobsweep.adapters.bamboohr import BambooHRAdapter
from jobsweep.adapters.base import SourceAdapter
from jobsweep.adapters.career_page import CareerPageAdapter
from jobsweep.adapters.greenhouse import GreenhouseAdapter
from jobsweep.adapters.lever import LeverAdapter
from jobsweep.adapters.tes import TesAdapter
from jobsweep.adapters.workable import WorkableAdapter
from jobsweep.core.sources import SourceConfig

ADAPTER_TYPES: dict[str, type[SourceAdapter]] = {
    "greenhouse": GreenhouseAdapter,
    "lever": LeverAdapter,
    "workable": WorkableAdapter,
    "bamboohr": BambooHRAdapter,
    "career_page": CareerPageAdapter,
    "tes": TesAdapter,
}


def build_adapter(config: SourceConfig, *, page_delay_seconds: float = 2.0) -> SourceAdapter:
    if config.kind == "tes":
        return TesAdapter(config, page_delay_seconds=page_delay_seconds)
    return ADAPTER_TYPES[config.kind](config)


def build_adapters(configs: list[SourceConfig], *, page_delay_seconds: float = 2.0) -> list[SourceAdapter]:
    """Adapters for the enabled sources, in configuration order."""
    return [build_adapter(config, page_delay_seconds=page_delay_seconds) for config in configs if config.enabled]
