import logging
from pathlib import Path

import yaml
from transitions import Machine, MachineError

from stripbooth.errors import InvalidTransition

logger = logging.getLogger(__name__)


class CaptureFSM:
    """
    Finite State Machine for one capture session.
    Loads its structure from states.yaml; triggers are bound as methods
    (``acquire()``, ``shoot()``, ...) by ``transitions``.
    """

    def __init__(self, config_path=None):
        self.config_path = config_path or Path(__file__).parent / "states.yaml"

        with open(self.config_path, "r") as f:
            fsm_config = yaml.safe_load(f)

        self.machine = Machine(
            model=self,
            states=fsm_config.get("states", []),
            transitions=fsm_config.get("transitions", []),
            initial=fsm_config.get("initial", "idle"),
            auto_transitions=False,
            after_state_change="_log_state",
        )

    def fire(self, trigger: str, operation: str = None):
        """Run ``trigger``, reporting an illegal move as ``InvalidTransition``."""
        try:
            return self.trigger(trigger)
        except MachineError:
            raise InvalidTransition(operation or trigger.replace("_", " "), self.state) from None

    def _log_state(self):
        logger.debug("Capture state -> %s", self.state)
