"""
binder/routers/deps.py
Dependency accessors. Routers reach the service objects only through these.
"""

from fastapi import Request

from binder.boot import Services


def get_services(request: Request) -> Services:
    return request.app.state.services
