"""Metric export module."""

from .metricd_client import MetricdClient

__all__ = ["MetricdClient"]
