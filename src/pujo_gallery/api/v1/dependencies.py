"""Shared API dependencies."""

from typing import Annotated

from fastapi import Depends, Request

from pujo_gallery.services.container import GalleryServices


def get_services(request: Request) -> GalleryServices:
    """Return the service container created at application startup.

    Raises:
        RuntimeError: If the application has not been started
    """
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Gallery services are not initialised")
    return services


# Type alias for the service container dependency
ServicesDep = Annotated[GalleryServices, Depends(get_services)]
