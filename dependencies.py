# dependencies.py
from fastapi import Request

from broadcast import BroadcastChannel


# Process-scoped collaborators live on app.state (set up in main.lifespan);
# tests swap them through app.dependency_overrides.


def get_channel(request: Request) -> BroadcastChannel:
    return request.app.state.channel


def get_image_store(request: Request):
    return request.app.state.image_store


def get_sms_gateway(request: Request):
    return request.app.state.sms_gateway
