"""Site assembly: settings plus loaded content, turned into a route table."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import psutil

from config import ASSETS_PREFIX, Settings
from content import ContentTable, load_content
from handlers.site_handlers import (
    HELLO_WORLD_ROUTE,
    AssetHandler,
    HealthHandler,
    HelloWorldHeavyHandler,
    PageHandler,
    RootHandler,
    hello_world,
)
from router import Router

logger = logging.getLogger(__name__)


def _process_started_at() -> float:
    return psutil.Process().create_time()


@dataclass(frozen=True, slots=True)
class Site:
    """Everything the handlers read: built once at startup, never mutated."""

    settings: Settings
    content: ContentTable
    started_at: float = field(default_factory=_process_started_at)

    @classmethod
    def load(cls, settings: Settings) -> "Site":
        return cls(settings=settings, content=load_content(settings.public_path))


def build_router(site: Site) -> Router:
    """Register one GET route per page, then the fixed endpoints on top."""
    router = Router()
    for route, entry in site.content.items():
        if route == HELLO_WORLD_ROUTE:
            continue
        router.add_route("GET", f"/{route}", PageHandler(entry))

    fixed_routes = {
        "/": RootHandler(site.settings.server_name, site.content),
        "/helloworld": hello_world,
        "/helloworld-heavy": HelloWorldHeavyHandler(site.content.get(HELLO_WORLD_ROUTE)),
        "/health": HealthHandler(
            api_key=site.settings.health_check_api_key,
            loaded_count=len(site.content),
            started_at=site.started_at,
        ),
    }
    for path, handler in fixed_routes.items():
        if router.has_route("GET", path):
            logger.warning("Page %s is shadowed by a built-in endpoint", path)
        router.add_route("GET", path, handler)

    router.add_prefix_route("GET", ASSETS_PREFIX, AssetHandler(site.settings.assets_path))
    return router
