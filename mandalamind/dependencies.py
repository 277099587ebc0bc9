from fastapi import Request

from mandalamind.services.ai_base import MandalaAIService
from mandalamind.services.neurosky_service import NeuroSkyService
from mandalamind.storage import Storage
from mandalamind.websocket.manager import ConnectionManager


def get_storage(request: Request) -> Storage:
    return request.app.state.storage


def get_neurosky(request: Request) -> NeuroSkyService:
    return request.app.state.neurosky


def get_ai_service(request: Request) -> MandalaAIService:
    return request.app.state.ai_service


def get_manager(request: Request) -> ConnectionManager:
    return request.app.state.manager


def get_sentiment_service(request: Request):
    return request.app.state.sentiment_service
