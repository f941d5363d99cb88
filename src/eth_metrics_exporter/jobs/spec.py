from __future__ import annotations
import logging
from typing import Any, Dict, Optional

from .job_base import Job

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

# Numeric chain spec constants exported as spec_<lowercase key>
SPEC_CONSTANTS = (
    "SAFE_SLOTS_TO_UPDATE_JUSTIFIED",
    "DEPOSIT_CHAIN_ID",
    "MAX_VALIDATORS_PER_COMMITTEE",
    "SECONDS_PER_ETH1_BLOCK",
    "BASE_REWARD_FACTOR",
    "EPOCHS_PER_SYNC_COMMITTEE_PERIOD",
    "EFFECTIVE_BALANCE_INCREMENT",
    "MAX_ATTESTATIONS",
    "MIN_SYNC_COMMITTEE_PARTICIPANTS",
    "GENESIS_DELAY",
    "SECONDS_PER_SLOT",
    "MAX_EFFECTIVE_BALANCE",
    "TERMINAL_TOTAL_DIFFICULTY",
    "MAX_DEPOSITS",
    "MIN_GENESIS_ACTIVE_VALIDATOR_COUNT",
    "TARGET_COMMITTEE_SIZE",
    "SYNC_COMMITTEE_SIZE",
    "ETH1_FOLLOW_DISTANCE",
    "TERMINAL_BLOCK_HASH_ACTIVATION_EPOCH",
    "MIN_DEPOSIT_AMOUNT",
    "SLOTS_PER_EPOCH",
)


def _as_number(value: Any) -> Optional[float]:
    try:
        return float(int(str(value), 0))
    except (TypeError, ValueError):
        try:
            return float(value)
        except (TypeError, ValueError):
            return None


class SpecJob(Job):
    """Chain spec constants. Fails to start when the spec is unavailable."""

    NAME = "spec"
    INTERVAL = 600.0

    def __init__(self, client, sink):
        self.spec: Dict[str, Any] = {}
        super().__init__(client, sink)

    def register_metrics(self) -> None:
        for key in SPEC_CONSTANTS:
            self.sink.gauge(f"spec_{key.lower()}", f"The {key} value from the beacon chain spec.")
        self.sink.gauge(
            "spec_terminal_total_difficulty_trillions",
            "TERMINAL_TOTAL_DIFFICULTY divided by 10^12.",
        )
        self.sink.gauge("spec_config_name", "The name of the chain config.", ["name"])
        self.sink.gauge("spec_preset_base", "The preset base of the chain config.", ["preset"])

    def setup(self) -> None:
        self.tick()

    def tick(self) -> None:
        spec = self.client.spec()
        self.spec = dict(spec)

        for key in SPEC_CONSTANTS:
            if key not in spec:
                continue
            value = _as_number(spec[key])
            if value is None:
                logger.debug("spec: non-numeric %s=%r", key, spec[key])
                continue
            self.sink.set(f"spec_{key.lower()}", value)
            if key == "TERMINAL_TOTAL_DIFFICULTY":
                self.sink.set("spec_terminal_total_difficulty_trillions", value / 1e12)

        if "CONFIG_NAME" in spec:
            self.sink.set("spec_config_name", 1, name=str(spec["CONFIG_NAME"]))
        if "PRESET_BASE" in spec:
            self.sink.set("spec_preset_base", 1, preset=str(spec["PRESET_BASE"]))
