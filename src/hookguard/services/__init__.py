"""
hookguard Services

HTTP trigger surface for the scheduled health-check and retry passes.
"""

from .health_service import HookguardService, build_channels, create_app, run_server

__all__ = [
    "HookguardService",
    "build_channels",
    "create_app",
    "run_server",
]
