"""Typed dataset lifecycle and progress events.

This module defines one frozen event type per notification channel and a
callback registry that delivers independent copies to each subscriber.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Callable, ClassVar, TypeVar, Union

from core.logging_config import get_logger
from core.types import BatchUploadResult, Dataset, DatasetProgress

_LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    """Batch progress re-emitted on the dataset-scoped channel."""

    channel: ClassVar[str] = "dataset:progress"

    progress: DatasetProgress


@dataclass(frozen=True)
class CreateStartedEvent:
    """Emitted before a dataset creation uploads its files."""

    channel: ClassVar[str] = "dataset:create:start"

    name: str
    file_count: int


@dataclass(frozen=True)
class CreateCompletedEvent:
    """Emitted after a dataset was registered."""

    channel: ClassVar[str] = "dataset:create:complete"

    dataset: Dataset
    batch_result: BatchUploadResult
    execution_time_ms: float


@dataclass(frozen=True)
class CreateFailedEvent:
    """Emitted when a dataset creation is rejected."""

    channel: ClassVar[str] = "dataset:create:error"

    name: str
    error: str


DatasetEvent = Union[ProgressEvent, CreateStartedEvent, CreateCompletedEvent, CreateFailedEvent]
EventT = TypeVar("EventT", ProgressEvent, CreateStartedEvent, CreateCompletedEvent, CreateFailedEvent)


class EventBus:
    """Callback registry keyed by event type."""

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Callable[..., None]]] = {}

    def subscribe(
        self,
        event_type: type[EventT],
        callback: Callable[[EventT], None],
    ) -> Callable[[], None]:
        """Register a callback for one event type.

        Args:
            event_type: Event class to listen for.
            callback: Callable invoked with a copy of each event.

        Returns:
            A callable that removes the subscription.
        """
        callbacks = self._subscribers.setdefault(event_type, [])
        callbacks.append(callback)

        def _unsubscribe() -> None:
            if callback in callbacks:
                callbacks.remove(callback)

        return _unsubscribe

    def publish(self, event: DatasetEvent) -> None:
        """Deliver an event to every subscriber of its type.

        Each subscriber receives its own deep copy. A failing subscriber
        is logged and does not stop delivery or the publishing operation.

        Args:
            event: Event to deliver.
        """
        for callback in list(self._subscribers.get(type(event), ())):
            try:
                callback(copy.deepcopy(event))
            except Exception as error:
                _LOGGER.error(
                    "event_subscriber_failed",
                    channel=event.channel,
                    error=str(error),
                )

    def subscriber_count(self, event_type: type) -> int:
        """Return the number of callbacks registered for an event type."""
        return len(self._subscribers.get(event_type, ()))
