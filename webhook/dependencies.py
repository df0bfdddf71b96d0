"""
Shared FastAPI dependencies for the webhook routers.
"""

from fastapi import Request

from infra.bootstrap import InfraBootstrap


def get_bootstrap(request: Request) -> InfraBootstrap:
    """
    The process-wide bootstrap stored on app.state by the lifespan.

    Raises:
        ConfigurationError: If startup configuration failed (answered as 500)
    """
    bootstrap: InfraBootstrap = request.app.state.bootstrap
    return bootstrap.require()
