"""
Form lifecycle events.

Listeners hook into data binding and submission of a form node:

- PRE_SET_DATA / POST_SET_DATA around ``Form.set_data``
- PRE_SUBMIT with the raw submitted value, before any transformation;
  listeners may rewrite it or add and remove children
- SUBMIT with the normalized model data; leaf listeners may replace it
- VALIDATION_SUCCESS / VALIDATION_ERROR after the submitted node validated
- POST_SUBMIT once submission has finished

Listeners run highest priority first; equal priorities run in the order
they were added. Exceptions raised by a listener propagate to the caller.
"""

import logging
from collections import defaultdict
from collections.abc import Callable, Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from formgen.core.form import Form

logger = logging.getLogger(__name__)


class FormEvents(str, Enum):
    PRE_SET_DATA = "form.pre_set_data"
    POST_SET_DATA = "form.post_set_data"
    PRE_SUBMIT = "form.pre_submit"
    SUBMIT = "form.submit"
    POST_SUBMIT = "form.post_submit"
    VALIDATION_ERROR = "form.validation_error"
    VALIDATION_SUCCESS = "form.validation_success"


class FormEvent:
    """Payload handed to listeners.

    Args:
        form: The node the event is dispatched for.
        data: Data at this point of the lifecycle; listeners may replace it.
        context: Extra values, e.g. the errors for VALIDATION_ERROR.
    """

    def __init__(self, form: "Form", data: Any = None, context: dict[str, Any] | None = None):
        self.form = form
        self.data = data
        self.context = dict(context or {})
        self._propagation_stopped = False

    def get_data(self) -> Any:
        return self.data

    def set_data(self, data: Any) -> None:
        self.data = data

    def stop_propagation(self) -> None:
        """Skip the listeners that have not run yet."""
        self._propagation_stopped = True

    @property
    def is_propagation_stopped(self) -> bool:
        return self._propagation_stopped


Listener = Callable[[FormEvent], None]


@runtime_checkable
class EventSubscriber(Protocol):
    """Object listening to several events through its own methods.

    ``get_subscribed_events`` maps an event to a method name, or to a
    ``(method_name, priority)`` pair.
    """

    def get_subscribed_events(self) -> Mapping[str, str | tuple[str, int]]: ...


def _event_name(event: FormEvents | str) -> str:
    return event.value if isinstance(event, FormEvents) else event


class EventDispatcher:
    """Keeps listeners per event name and calls them in priority order."""

    def __init__(self):
        self._listeners: dict[str, list[tuple[int, int, Listener]]] = defaultdict(list)
        self._sequence = 0

    def add_listener(self, event: FormEvents | str, listener: Listener, priority: int = 0) -> "EventDispatcher":
        name = _event_name(event)
        self._sequence += 1
        self._listeners[name].append((priority, self._sequence, listener))
        self._listeners[name].sort(key=lambda item: (-item[0], item[1]))
        logger.debug("Added listener for '%s' (priority %d)", name, priority)
        return self

    def remove_listener(self, event: FormEvents | str, listener: Listener) -> bool:
        name = _event_name(event)
        entries = self._listeners.get(name, [])
        kept = [entry for entry in entries if entry[2] != listener]
        if len(kept) == len(entries):
            return False
        self._listeners[name] = kept
        return True

    def add_subscriber(self, subscriber: EventSubscriber) -> "EventDispatcher":
        for event, params in subscriber.get_subscribed_events().items():
            method, priority = (params, 0) if isinstance(params, str) else params
            self.add_listener(event, getattr(subscriber, method), priority)
        return self

    def remove_subscriber(self, subscriber: EventSubscriber) -> None:
        for event, params in subscriber.get_subscribed_events().items():
            method = params if isinstance(params, str) else params[0]
            self.remove_listener(event, getattr(subscriber, method))

    def has_listeners(self, event: FormEvents | str) -> bool:
        return bool(self._listeners.get(_event_name(event)))

    def get_listeners(self, event: FormEvents | str) -> list[Listener]:
        return [listener for _, _, listener in self._listeners.get(_event_name(event), [])]

    def event_names(self) -> list[str]:
        return [name for name, entries in self._listeners.items() if entries]

    def clear(self) -> None:
        self._listeners.clear()

    def dispatch(self, event: FormEvents | str, payload: FormEvent) -> FormEvent:
        for listener in self.get_listeners(event):
            if payload.is_propagation_stopped:
                break
            listener(payload)
        return payload
