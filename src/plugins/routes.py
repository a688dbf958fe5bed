"""Default routes plugin

Any module exposing a coroutine with the same signature can take its place.
Handlers reach the database with ``Depends(get_database)``; the plugin itself
requires the database capability so that it fails fast when registered
before the connector.
"""

from typing import Any, Dict

from src.api.routes import health, root

from .base import AppContext
from .database import DATABASE


async def routes(context: AppContext, options: Dict[str, Any]) -> None:
    """Include the health and root routers

    Args:
        context: Application context
        options: ``prefix`` applies to the root router only
    """
    context.require(DATABASE)

    context.app.include_router(health.router)
    context.app.include_router(root.router, prefix=options.get("prefix", ""))
