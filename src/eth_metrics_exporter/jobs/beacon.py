from __future__ import annotations
import logging
import threading
from typing import Any, Dict, Optional

from ..types import Event
from .job_base import Job

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class BeaconJob(Job):
    """Per-block beacon chain data.

    Polls the head block for its operation counts, and receives events from
    the subscription watchdog via ``handle_event`` for head, block, reorg and
    finality updates. ``handle_event`` runs on the event stream thread.
    """

    NAME = "beacon"
    INTERVAL = 12.0

    def __init__(self, client, sink):
        self._lock = threading.Lock()
        self._last_head_slot: Optional[int] = None
        super().__init__(client, sink)

    def register_metrics(self) -> None:
        self.sink.gauge("beacon_slot", "The slot number of the block.", ["block_id"])
        self.sink.gauge("beacon_attestations", "The amount of attestations in the block.", ["block_id"])
        self.sink.gauge("beacon_deposits", "The amount of deposits in the block.", ["block_id"])
        self.sink.gauge("beacon_slashings", "The amount of slashings in the block.", ["block_id", "type"])
        self.sink.gauge("beacon_transactions", "The amount of transactions in the block.", ["block_id"])
        self.sink.gauge("beacon_voluntary_exits", "The amount of voluntary exits in the block.", ["block_id"])
        self.sink.gauge("beacon_finality_checkpoints", "The epoch of the finality checkpoint.", ["state_id", "checkpoint"])
        self.sink.counter("beacon_reorg_count", "The count of chain reorgs.")
        self.sink.gauge("beacon_reorg_depth", "The depth of the last chain reorg.")
        self.sink.counter("beacon_empty_slots_count", "The number of slots that did not contain a block.")
        self.sink.counter("beacon_blocks_count", "The number of blocks announced by the node.")

    def tick(self) -> None:
        block = self.client.head_block()
        message = block.get("message", {})
        body = message.get("body", {})

        self.sink.set("beacon_slot", _int(message.get("slot")), block_id="head")
        self.sink.set("beacon_attestations", len(body.get("attestations", [])), block_id="head")
        self.sink.set("beacon_deposits", len(body.get("deposits", [])), block_id="head")
        self.sink.set("beacon_voluntary_exits", len(body.get("voluntary_exits", [])), block_id="head")
        self.sink.set("beacon_slashings", len(body.get("proposer_slashings", [])), block_id="head", type="proposer")
        self.sink.set("beacon_slashings", len(body.get("attester_slashings", [])), block_id="head", type="attester")
        payload = body.get("execution_payload") or {}
        self.sink.set("beacon_transactions", len(payload.get("transactions", [])), block_id="head")

    def handle_event(self, event: Event) -> None:
        """Publish metrics derived from one delivered event."""
        data: Dict[str, Any] = event.data
        if event.topic == "head":
            self._observe_head(_int(data.get("slot")))
        elif event.topic == "block":
            self.sink.inc("beacon_blocks_count")
        elif event.topic == "chain_reorg":
            self.sink.inc("beacon_reorg_count")
            self.sink.set("beacon_reorg_depth", _int(data.get("depth")))
        elif event.topic == "finalized_checkpoint":
            self.sink.set(
                "beacon_finality_checkpoints",
                _int(data.get("epoch")),
                state_id="head",
                checkpoint="finalized",
            )

    def _observe_head(self, slot: int) -> None:
        with self._lock:
            previous = self._last_head_slot
            if previous is None or slot > previous:
                self._last_head_slot = slot
        self.sink.set("beacon_slot", slot, block_id="head")
        if previous is not None and slot > previous + 1:
            self.sink.inc("beacon_empty_slots_count", slot - previous - 1)
