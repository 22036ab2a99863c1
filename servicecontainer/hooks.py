"""HookRegistry — the host's filter/action surface.

The container exposes itself through three hooks:

* ``servicecontainer/container`` — filter; returns the live container.
* ``servicecontainer/container_booted`` — action; fired once after boot
  with the container as its only argument.
* ``servicecontainer/container_bundles`` — filter over the bundle
  activation mapping, applied before bundles are instantiated.

Callbacks run by ascending priority, then in registration order.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

CONTAINER_FILTER = "servicecontainer/container"
BOOTED_ACTION = "servicecontainer/container_booted"
BUNDLES_FILTER = "servicecontainer/container_bundles"

DEFAULT_PRIORITY = 10

Callback = Callable[..., Any]


class HookRegistry:
    """Named filters and actions.

    Filters thread a value through their callbacks; actions only notify.

    Examples
    --------
    >>> hooks = HookRegistry()
    >>> hooks.add_filter("greeting", lambda value: value + "!")
    >>> hooks.apply_filters("greeting", "hello")
    'hello!'
    """

    def __init__(self) -> None:
        self._filters: dict[str, list[tuple[int, int, Callback]]] = {}
        self._actions: dict[str, list[tuple[int, int, Callback]]] = {}
        self._counter = 0

    def _add(self, table: dict[str, list[tuple[int, int, Callback]]], name: str, callback: Callback, priority: int) -> None:
        self._counter += 1
        entries = table.setdefault(name, [])
        entries.append((priority, self._counter, callback))
        entries.sort(key=lambda entry: (entry[0], entry[1]))

    # -- Filters ------------------------------------------------------------

    def add_filter(self, name: str, callback: Callback, priority: int = DEFAULT_PRIORITY) -> None:
        self._add(self._filters, name, callback, priority)

    def has_filter(self, name: str) -> bool:
        return bool(self._filters.get(name))

    def remove_filter(self, name: str, callback: Callback) -> bool:
        """Remove *callback* from *name*; return whether it was registered."""
        entries = self._filters.get(name, [])
        kept = [entry for entry in entries if entry[2] != callback]
        self._filters[name] = kept
        return len(kept) != len(entries)

    def apply_filters(self, name: str, value: Any = None, *args: Any) -> Any:
        """Pass *value* through every callback on *name* and return the result.

        Filters registered as accessors ignore the incoming value, so
        ``apply_filters(CONTAINER_FILTER)`` returns the container.
        """
        for _, _, callback in list(self._filters.get(name, [])):
            value = callback(value, *args)
        return value

    # -- Actions ------------------------------------------------------------

    def add_action(self, name: str, callback: Callback, priority: int = DEFAULT_PRIORITY) -> None:
        self._add(self._actions, name, callback, priority)

    def has_action(self, name: str) -> bool:
        return bool(self._actions.get(name))

    def do_action(self, name: str, *args: Any) -> None:
        callbacks = list(self._actions.get(name, []))
        logger.debug("Firing action %s (%d callback(s)).", name, len(callbacks))
        for _, _, callback in callbacks:
            callback(*args)


hooks = HookRegistry()
