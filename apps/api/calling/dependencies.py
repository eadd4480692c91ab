"""FastAPI dependencies for objects built in the application lifespan."""
from __future__ import annotations

from fastapi import Request

from .services.event_queue import EventQueue
from .services.object_store import ObjectStore
from .services.outbound_calls import OutboundCallInitiator
from .services.variables import DynamicVariableProvider


def get_event_queue(request: Request) -> EventQueue:
    return request.app.state.event_queue


def get_variable_provider(request: Request) -> DynamicVariableProvider:
    return request.app.state.variable_provider


def get_call_initiator(request: Request) -> OutboundCallInitiator:
    return request.app.state.call_initiator


def get_object_store(request: Request) -> ObjectStore:
    return request.app.state.object_store
