"""Carrier adapters."""

from litestar_carriers.carriers.base import BaseCarrierAdapter
from litestar_carriers.carriers.shiprocket import ShiprocketAdapter

__all__ = ["BaseCarrierAdapter", "ShiprocketAdapter"]
