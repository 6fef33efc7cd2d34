"""
FastAPI dependencies resolving the components attached to the app.
"""

from typing import Annotated

from fastapi import Depends, Request

from entryflow.config import Settings
from entryflow.store.base import RecordStore
from entryflow.worker.dispatcher import Dispatcher


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


Store = Annotated[RecordStore, Depends(get_store)]
DispatcherDep = Annotated[Dispatcher, Depends(get_dispatcher)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
