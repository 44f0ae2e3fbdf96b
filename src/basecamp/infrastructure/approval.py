"""In-process approval broker. Implements the ApprovalBroker port.

Each waiting tool call gets an asyncio future keyed by its tool-call id;
``submit_decision`` resolves it.  A decision that arrives before anyone waits
is kept and handed to the first ``await_decision`` for that id.

Each wait consumes exactly one decision.  Once an id has been decided, repeat
decisions for it are dropped until a new wait for that id begins, so a
duplicate submit can never pre-approve a later call that reuses the id.

Single event loop only: call ``submit_decision`` from the loop that runs the
turn (use ``loop.call_soon_threadsafe`` from other threads).
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Dict, List

from basecamp.domain import DECISION_APPROVE, DECISION_REJECT

logger = logging.getLogger(__name__)

_DECISIONS = (DECISION_APPROVE, DECISION_REJECT)

# Upper bound for remembered early decisions and decided ids; oldest go first.
MAX_REMEMBERED_IDS = 1024


class InMemoryApprovalBroker:
    def __init__(self, max_remembered: int = MAX_REMEMBERED_IDS) -> None:
        self._waiters: Dict[str, asyncio.Future] = {}
        self._early: "OrderedDict[str, str]" = OrderedDict()
        self._decided: "OrderedDict[str, None]" = OrderedDict()
        self._max_remembered = max(1, max_remembered)

    @property
    def pending_ids(self) -> List[str]:
        """Ids of tool calls currently blocked on a decision, in arrival order."""
        return [call_id for call_id, fut in self._waiters.items() if not fut.done()]

    def submit_decision(self, tool_call_id: str, decision: str) -> None:
        if decision not in _DECISIONS:
            raise ValueError(f"Decision must be one of {_DECISIONS}, got {decision!r}")
        fut = self._waiters.pop(tool_call_id, None)
        if fut is not None and not fut.done():
            fut.set_result(decision)
            self._mark_decided(tool_call_id)
            logger.debug("Approval decision delivered: id=%s decision=%s", tool_call_id, decision)
            return
        if tool_call_id in self._decided or tool_call_id in self._early:
            logger.info("Ignoring repeat decision for tool call %s (%s)", tool_call_id, decision)
            return
        self._early[tool_call_id] = decision
        while len(self._early) > self._max_remembered:
            dropped, _ = self._early.popitem(last=False)
            logger.warning("Dropping unclaimed approval decision for tool call %s", dropped)
        logger.debug("Approval decision stored for later: id=%s decision=%s", tool_call_id, decision)

    async def await_decision(self, tool_call_id: str) -> str:
        if tool_call_id in self._early:
            decision = self._early.pop(tool_call_id)
            self._mark_decided(tool_call_id)
            return decision
        if tool_call_id in self._waiters:
            raise RuntimeError(f"Already awaiting a decision for tool call {tool_call_id!r}")
        self._decided.pop(tool_call_id, None)
        fut = asyncio.get_running_loop().create_future()
        self._waiters[tool_call_id] = fut
        try:
            return await fut
        finally:
            if self._waiters.get(tool_call_id) is fut:
                del self._waiters[tool_call_id]

    def reject_all(self) -> int:
        """Reject every pending call (e.g. when the user abandons the turn). Returns how many."""
        ids = self.pending_ids
        for call_id in ids:
            self.submit_decision(call_id, DECISION_REJECT)
        return len(ids)

    def clear(self) -> None:
        """Forget stored early decisions and decided ids; pending waits are untouched."""
        self._early.clear()
        self._decided.clear()

    def _mark_decided(self, tool_call_id: str) -> None:
        self._decided[tool_call_id] = None
        self._decided.move_to_end(tool_call_id)
        while len(self._decided) > self._max_remembered:
            self._decided.popitem(last=False)
