"""
FastAPI dependencies.
"""

from typing import Annotated

from fastapi import Depends, Request

from cmdqueue.gateway import JobGateway


def get_gateway(request: Request) -> JobGateway:
    """
    Get the gateway attached to the application.

    Raises:
        RuntimeError: If the application started without a gateway.
    """
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise RuntimeError("Job gateway not initialized")
    return gateway


Gateway = Annotated[JobGateway, Depends(get_gateway)]
