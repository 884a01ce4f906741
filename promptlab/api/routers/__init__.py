"""Route modules, imported lazily by the app factory."""
from __future__ import annotations

import importlib
from typing import List

from fastapi import APIRouter

# Module paths that provide a ``router`` attribute.
_ROUTER_MODULES = [
    "promptlab.api.routers.jobs",
    "promptlab.api.routers.health",
    "promptlab.api.routers.dashboard",
    "promptlab.api.routers.metrics",
]


def all_routers() -> List[APIRouter]:
    """Import and return every router."""
    return [importlib.import_module(mod_path).router for mod_path in _ROUTER_MODULES]
