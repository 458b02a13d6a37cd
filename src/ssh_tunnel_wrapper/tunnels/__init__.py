"""Tunnel configuration and state models."""

from .models import KeyReference, TunnelConfiguration, TunnelHandle, TunnelState

__all__ = [
    "KeyReference",
    "TunnelConfiguration",
    "TunnelHandle",
    "TunnelState",
]
