from demurrage.config import EVENT_LOG_LIMIT
from demurrage.token.errors import (
    IncompatibleStorageLayout,
    InvalidImplementation,
    NotOwner,
)
from demurrage.token.ledger import TokenWithFees
from demurrage.token.state import TokenState
from demurrage.util.log import log_success, log_warn, short


class TokenProxy:
    """
    Stable façade owning the token storage and forwarding calls to the current
    implementation class.

    State-changing calls run against a snapshot of the storage that replaces the
    live state only when the call returns, so a failing call leaves no trace,
    fee settlements included.
    """
    def __init__(self, implementation=TokenWithFees, state=None, event_log_limit=EVENT_LOG_LIMIT):
        self._check_implementation(implementation)
        self.implementation = implementation
        self.state = state if state is not None else TokenState()
        self.event_log = []
        self.event_log_limit = event_log_limit

    def __repr__(self):
        return f'TokenProxy(v{self.implementation.VERSION}, {self.state.symbol or "<uninitialized>"})'

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        implementation = self.__dict__.get("implementation")
        if implementation is None:
            raise AttributeError(name)

        method = getattr(implementation, name)
        if not callable(method):
            return method

        if not getattr(method, "mutates", False):
            return getattr(implementation(self.state), name)

        def transactional_call(*args, **kwargs):
            working_state = self.state.snapshot()
            logic = implementation(working_state)
            try:
                result = getattr(logic, name)(*args, **kwargs)
            except Exception as exc:
                log_warn(f"[PROXY] {name} reverted: {exc}")
                raise
            self.state = working_state
            self._record(logic.events)
            return result

        transactional_call.__name__ = name
        transactional_call.__doc__ = method.__doc__
        return transactional_call

    def upgrade_to(self, caller, implementation):
        """
        Swap the logic behind the proxy, keeping the storage.
        """
        if caller != self.state.owner:
            raise NotOwner()
        self._check_implementation(implementation)

        current_layout = tuple(self.implementation.STORAGE_LAYOUT)
        new_layout = tuple(implementation.STORAGE_LAYOUT)
        if new_layout[:len(current_layout)] != current_layout:
            raise IncompatibleStorageLayout()

        previous = self.implementation
        self.implementation = implementation
        log_success(
            f"[PROXY] Upgraded v{previous.VERSION} -> v{implementation.VERSION} by {short(caller)}"
        )

    def _record(self, events):
        self.event_log.extend(events)
        # Oldest events are dropped first.
        if len(self.event_log) > self.event_log_limit:
            del self.event_log[:-self.event_log_limit]

    def recent_events(self, limit=None):
        if limit:
            return self.event_log[-limit:]
        return list(self.event_log)

    @staticmethod
    def _check_implementation(implementation):
        if not isinstance(implementation, type) or not issubclass(implementation, TokenWithFees):
            raise InvalidImplementation()
