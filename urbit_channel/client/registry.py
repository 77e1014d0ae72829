import threading
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union

from urbit_channel.shared.models import SubscribeAction

EventHandler = Callable[[Any], Union[Awaitable[None], None]]
ErrorHandler = Callable[[BaseException], Union[Awaitable[None], None]]
QuitHandler = Callable[[], Union[Awaitable[None], None]]


@dataclass(frozen=True)
class Subscription:
    id: int
    ship: str
    app: str
    path: str
    on_event: EventHandler | None = None
    on_error: ErrorHandler | None = None
    on_quit: QuitHandler | None = None

    def to_action(self) -> SubscribeAction:
        return SubscribeAction(id=self.id, ship=self.ship, app=self.app, path=self.path)


class SubscriptionRegistry:
    """
    Id allocation and handler storage for one client.

    Registering never touches the network. Ids start at 1, only ever go up, and
    survive reconnects: the same ids are replayed against every new channel.
    The background reader and foreground callers share this object, so every
    access goes through one lock.

    A removed id is retired: frames still addressed to it are dropped by the
    router instead of being treated as unaddressed and broadcast.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._next_id = 1
        self._subscriptions: dict[int, Subscription] = {}
        self._retired: set[int] = set()

    def register(
        self,
        *,
        ship: str,
        app: str,
        path: str,
        on_event: EventHandler | None = None,
        on_error: ErrorHandler | None = None,
        on_quit: QuitHandler | None = None,
    ) -> int:
        with self._lock:
            sub_id = self._next_id
            self._next_id += 1
            self._subscriptions[sub_id] = Subscription(
                id=sub_id,
                ship=ship,
                app=app,
                path=path,
                on_event=on_event,
                on_error=on_error,
                on_quit=on_quit,
            )
            return sub_id

    def remove(self, sub_id: int) -> Subscription | None:
        with self._lock:
            subscription = self._subscriptions.pop(sub_id, None)
            if subscription is not None:
                self._retired.add(sub_id)
            return subscription

    def is_retired(self, sub_id: int) -> bool:
        with self._lock:
            return sub_id in self._retired

    def lookup(self, sub_id: int) -> Subscription | None:
        with self._lock:
            return self._subscriptions.get(sub_id)

    def all(self) -> list[Subscription]:
        """Snapshot in id order. Safe to iterate while handlers mutate the registry."""
        with self._lock:
            return [self._subscriptions[k] for k in sorted(self._subscriptions)]

    def batch(self) -> list[SubscribeAction]:
        return [sub.to_action() for sub in self.all()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def __contains__(self, sub_id: object) -> bool:
        with self._lock:
            return sub_id in self._subscriptions
