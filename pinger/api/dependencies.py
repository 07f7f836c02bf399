"""
FastAPI dependencies resolving services from the application context.
"""

from typing import Annotated

from fastapi import Depends, Request

from pinger.activator import JobActivator
from pinger.bootstrap import AppContext
from pinger.config import Settings
from pinger.observability.metrics import MetricsCollector
from pinger.queue.base import JobQueueClient
from pinger.worker.server import JobServer


def get_context(request: Request) -> AppContext:
    """The AppContext the app was created with."""
    return request.app.state.context


def get_settings(context: Annotated[AppContext, Depends(get_context)]) -> Settings:
    return context.settings


def get_queue(context: Annotated[AppContext, Depends(get_context)]) -> JobQueueClient:
    return context.queue


def get_activator(context: Annotated[AppContext, Depends(get_context)]) -> JobActivator:
    return context.activator


def get_server(context: Annotated[AppContext, Depends(get_context)]) -> JobServer:
    return context.server


def get_metrics(context: Annotated[AppContext, Depends(get_context)]) -> MetricsCollector | None:
    return context.metrics


ContextDep = Annotated[AppContext, Depends(get_context)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
QueueDep = Annotated[JobQueueClient, Depends(get_queue)]
ActivatorDep = Annotated[JobActivator, Depends(get_activator)]
ServerDep = Annotated[JobServer, Depends(get_server)]
MetricsDep = Annotated[MetricsCollector | None, Depends(get_metrics)]
