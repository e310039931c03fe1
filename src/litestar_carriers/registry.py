"""Carrier adapter registry."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from importlib.metadata import entry_points
from types import MappingProxyType

import httpx

from litestar_carriers.carriers.base import BaseCarrierAdapter
from litestar_carriers.config import CarriersConfig
from litestar_carriers.protocols import CarrierProfile

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "litestar_carriers.adapters"


class CarrierRegistry:
    """Maps carrier names to adapter classes.

    Built-in adapters are added by :meth:`discover`, together with any
    third-party adapters published under the ``litestar_carriers.adapters``
    entry point group.
    """

    def __init__(self) -> None:
        self._adapters: dict[str, type[BaseCarrierAdapter]] = {}
        self._discovered = False

    def register(self, adapter_cls: type[BaseCarrierAdapter]) -> None:
        name = getattr(adapter_cls, "name", "")
        if not name:
            raise ValueError(f"{adapter_cls.__name__} has no carrier name")
        self._adapters[name] = adapter_cls

    def unregister(self, name: str) -> None:
        self._adapters.pop(name, None)

    def get_by_name(self, name: str) -> type[BaseCarrierAdapter]:
        """Raises KeyError if no adapter is registered under ``name``."""
        return self._adapters[name]

    def names(self) -> list[str]:
        return sorted(self._adapters)

    def get_choices(self) -> list[tuple[str, str]]:
        return [
            (name, self._adapters[name].display_name or name)
            for name in self.names()
        ]

    def discover(self) -> None:
        if self._discovered:
            return
        from litestar_carriers.carriers.shiprocket import ShiprocketAdapter

        self._adapters.setdefault(ShiprocketAdapter.name, ShiprocketAdapter)
        for entry_point in entry_points(group=ENTRY_POINT_GROUP):
            try:
                adapter_cls = entry_point.load()
            except Exception:
                logger.exception(
                    "Failed to load carrier adapter %r", entry_point.name
                )
                continue
            self._adapters.setdefault(adapter_cls.name, adapter_cls)
        self._discovered = True

    def build(
        self,
        profiles: Iterable[CarrierProfile],
        *,
        config: CarriersConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> Mapping[str, BaseCarrierAdapter]:
        """Instantiate one adapter per profile with a known name.

        Profiles naming an unregistered carrier are skipped with a warning.
        The result is read-only.
        """
        adapters: dict[str, BaseCarrierAdapter] = {}
        for profile in profiles:
            adapter_cls = self._adapters.get(profile.name)
            if adapter_cls is None:
                logger.warning(
                    "No adapter registered for carrier %r, skipping",
                    profile.name,
                )
                continue
            adapters[profile.name] = adapter_cls(
                profile, config=config, client=client
            )
        return MappingProxyType(adapters)
