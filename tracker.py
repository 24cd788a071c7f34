"""
The tracker host: owns the current State and runs commands one at a time.

Each command reads the current State, computes the next one through the pure
reducer and swaps it in as a whole. Saving and email delivery follow a
successful swap; their failures are logged and do not undo the transition.
"""
import logging
import threading
from typing import Any, Dict, Optional

from pydantic import TypeAdapter

from accounts import authenticate
from commands import AnyCommand, Command, apply
from database import StateStore, load_state
from inventory import ledger_discrepancies
from notifications import EmailSender, dispatch, login_alert_email
from reports import ReportGenerator, generate_report, inventory_stats
from schemas import State, User

logger = logging.getLogger(__name__)

_command_adapter = TypeAdapter(AnyCommand)


class InventoryTracker:
    def __init__(
        self,
        store: StateStore,
        sender: Optional[EmailSender] = None,
        report_generator: Optional[ReportGenerator] = None,
        state: Optional[State] = None,
    ) -> None:
        self.store = store
        self.sender = sender if sender is not None else EmailSender()
        self.report_generator = report_generator
        self._lock = threading.Lock()
        self._state = state if state is not None else load_state(store)
        for item, lent in ledger_discrepancies(self._state):
            logger.warning(
                "item %s (%s) shows %d units lent but the log has %d on loan",
                item.id, item.name, item.borrowed_quantity, lent,
            )

    @property
    def state(self) -> State:
        return self._state

    def execute(self, command: Command) -> Any:
        """Apply one command; returns the transition's result or raises a LabError."""
        with self._lock:
            transition = apply(self._state, command)
            self._state = transition.state
            try:
                self.store.save(transition.state)
            except Exception:
                logger.exception("failed to save state version %d", transition.state.version)
        logger.info("%s committed (version %d)", type(command).__name__, transition.state.version)
        dispatch(self.sender, transition.events)
        return transition.result

    def execute_raw(self, data: Dict[str, Any]) -> Any:
        """Execute a command given as a plain dict, e.g. {"type": "approve_borrow", "logId": ...}."""
        return self.execute(_command_adapter.validate_python(data))

    def login(self, identifier: str, password: str) -> Optional[User]:
        user = authenticate(self._state, identifier, password)
        if user is not None:
            dispatch(self.sender, [login_alert_email(user)])
        return user

    def stats(self) -> Dict[str, int]:
        return inventory_stats(self._state)

    def report(self) -> str:
        return generate_report(self._state, self.report_generator)
