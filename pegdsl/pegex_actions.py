"""
Pegex actions: semantic callbacks keyed by rule name.

Actions run once a rule's match is complete, children first, so each
callback sees its sub-rules' made values already in place. Like a Lark
Transformer, a subclass may define methods named after rules instead of
calling register().
"""

import logging
from typing import Any, Callable, Dict, Optional

from .pegex_capture import CaptureTree
from .pegex_errors import ActionError, PegexError

logger = logging.getLogger(__name__)

ActionCallback = Callable[[CaptureTree], Any]


class Actions:
    """
    Dispatches completed rule matches to registered callbacks.

    Methods of a subclass whose names do not start with an underscore are
    registered as callbacks for the rule of the same name.
    """

    def __init__(self, callbacks: Optional[Dict[str, ActionCallback]] = None):
        self._callbacks: Dict[str, ActionCallback] = {}
        for name in dir(type(self)):
            if name.startswith("_") or name in Actions.__dict__:
                continue
            method = getattr(self, name)
            if callable(method):
                self._callbacks[name] = method
        for name, callback in (callbacks or {}).items():
            self.register(name, callback)

    def register(self, rule_name: str, callback: ActionCallback) -> "Actions":
        if not callable(callback):
            raise TypeError(f"Action for rule '{rule_name}' is not callable")
        self._callbacks[rule_name] = callback
        return self

    def has_action(self, rule_name: str) -> bool:
        return rule_name in self._callbacks

    def invoke(self, rule_name: str, node: CaptureTree) -> Any:
        """
        Run the callback for rule_name and attach its result to the node.

        Returns None (leaving the node unmade) when no callback is registered.

        Raises:
            ActionError: If the callback raises a non-pegex exception
        """
        callback = self._callbacks.get(rule_name)
        if callback is None:
            return None
        try:
            value = callback(node)
        except (PegexError, RecursionError):
            raise
        except Exception as e:
            logger.debug("Action for rule '%s' raised %r", rule_name, e)
            raise ActionError(rule_name, e) from e
        node.make(value)
        return value
