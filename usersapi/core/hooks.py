"""Callback registration points for the users resource.

Hook names used by the mapper:
    - ``user_query`` (filter): ``(args, filter, context, page) -> args``
    - ``pre_insert_user`` (filter): ``(record, data) -> record``; raise an
      ``ApiError`` to veto the mutation
    - ``insert_user`` (action): ``(record, data, is_update)``
    - ``delete_user`` (action): ``(user_id, reassign)``

Filters chain their return values and propagate exceptions. Actions are
notifications; a failing action is logged and the remaining actions still
run.
"""
from __future__ import annotations
import logging
from collections import defaultdict
from typing import Any, Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)

Callback = Callable[..., Any]


class Hooks:
    """Named filter and action registry with priority ordering."""

    def __init__(self):
        self._filters: Dict[str, List[Tuple[int, int, Callback]]] = defaultdict(list)
        self._actions: Dict[str, List[Tuple[int, int, Callback]]] = defaultdict(list)
        self._sequence = 0

    def _register(self, table, name: str, callback: Callback, priority: int) -> Callback:
        self._sequence += 1
        table[name].append((priority, self._sequence, callback))
        table[name].sort(key=lambda entry: (entry[0], entry[1]))
        return callback

    def add_filter(self, name: str, callback: Callback, priority: int = 10) -> Callback:
        return self._register(self._filters, name, callback, priority)

    def add_action(self, name: str, callback: Callback, priority: int = 10) -> Callback:
        return self._register(self._actions, name, callback, priority)

    def remove_filter(self, name: str, callback: Callback) -> bool:
        return self._remove(self._filters, name, callback)

    def remove_action(self, name: str, callback: Callback) -> bool:
        return self._remove(self._actions, name, callback)

    @staticmethod
    def _remove(table, name: str, callback: Callback) -> bool:
        entries = table.get(name, [])
        kept = [entry for entry in entries if entry[2] is not callback]
        table[name] = kept
        return len(kept) != len(entries)

    def filter(self, name: str, priority: int = 10) -> Callable[[Callback], Callback]:
        """Decorator form of :meth:`add_filter`."""
        def decorator(fn: Callback) -> Callback:
            return self.add_filter(name, fn, priority)
        return decorator

    def action(self, name: str, priority: int = 10) -> Callable[[Callback], Callback]:
        """Decorator form of :meth:`add_action`."""
        def decorator(fn: Callback) -> Callback:
            return self.add_action(name, fn, priority)
        return decorator

    def apply_filters(self, name: str, value: Any, *args: Any) -> Any:
        """Pass ``value`` through every filter registered under ``name``."""
        for _, _, callback in list(self._filters.get(name, [])):
            value = callback(value, *args)
        return value

    def do_action(self, name: str, *args: Any) -> None:
        """Notify every action registered under ``name``; failures are logged, not raised."""
        for _, _, callback in list(self._actions.get(name, [])):
            try:
                callback(*args)
            except Exception:
                logger.exception("Action %r failed in %s", name, getattr(callback, "__name__", callback))
