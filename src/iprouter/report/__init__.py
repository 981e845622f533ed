"""Operational reporting helpers"""

from .stability import DiscoveryError, discover_group, format_line, is_stable, watch

__all__ = ["DiscoveryError", "discover_group", "format_line", "is_stable", "watch"]
