"""Credit metering for workflow runs.

Cost is a fixed per-node-type table summed over the graph. The ledger is
consulted before a run (pre-check) and charged after it (deduction).

Usage:
    from flowys.services.pricing import InMemoryCreditLedger, UnlimitedCreditLedger

    ledger = InMemoryCreditLedger(default_balance=1000)
    check = await ledger.has_enough_credits(owner_id, nodes)
    ...
    await ledger.deduct_credits(owner_id, check.required)
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Sequence, Union

from flowys.constants import CREDIT_COSTS, DEFAULT_CREDIT_COST
from flowys.core.logging import get_logger
from flowys.models.workflow import Node

logger = get_logger(__name__)

NodeLike = Union[Node, Dict[str, Any]]


def node_cost(node_type: str) -> int:
    return CREDIT_COSTS.get(node_type, DEFAULT_CREDIT_COST)


def calculate_workflow_cost(nodes: Sequence[NodeLike]) -> int:
    """Total credit cost of executing every node once."""
    total = 0
    for node in nodes:
        node_type = node.type if isinstance(node, Node) else node.get("type", "")
        total += node_cost(node_type)
    return total


@dataclass
class CreditCheck:
    has_credits: bool
    required: int
    remaining: int

    def to_dict(self) -> Dict[str, Any]:
        return {"hasCredits": self.has_credits, "required": self.required, "remaining": self.remaining}


@dataclass
class CreditDeduction:
    success: bool
    remaining: int
    error: Optional[str] = None


class InsufficientCreditsError(Exception):
    """Raised before a run starts when the owner's balance is too low."""

    def __init__(self, required: int, remaining: int):
        super().__init__(f"Insufficient credits: {required} required, {remaining} remaining")
        self.required = required
        self.remaining = remaining


class CreditLedger(Protocol):
    """Protocol for credit ledgers (enables duck typing)."""

    async def has_enough_credits(self, owner_id: str, nodes: Sequence[NodeLike]) -> CreditCheck:
        ...

    async def deduct_credits(self, owner_id: str, amount: int) -> CreditDeduction:
        ...


class UnlimitedCreditLedger:
    """No-op ledger when metering is disabled.

    This follows the Null Object pattern - every check passes and every
    deduction succeeds.
    """

    UNLIMITED = 2 ** 31 - 1

    async def has_enough_credits(self, owner_id: str, nodes: Sequence[NodeLike]) -> CreditCheck:
        return CreditCheck(has_credits=True, required=calculate_workflow_cost(nodes), remaining=self.UNLIMITED)

    async def deduct_credits(self, owner_id: str, amount: int) -> CreditDeduction:
        logger.debug("Metering disabled, skipping deduction", owner_id=owner_id, amount=amount)
        return CreditDeduction(success=True, remaining=self.UNLIMITED)


class InMemoryCreditLedger:
    """Per-owner balances held in process memory.

    New owners start with ``default_balance``. Check and deduction each run
    under one lock, so concurrent runs never overdraw a balance.
    """

    def __init__(self, default_balance: int = 1000, balances: Optional[Dict[str, int]] = None):
        self.default_balance = default_balance
        self._balances: Dict[str, int] = dict(balances or {})
        self._lock = asyncio.Lock()

    def balance(self, owner_id: str) -> int:
        return self._balances.get(owner_id, self.default_balance)

    async def set_balance(self, owner_id: str, amount: int) -> None:
        async with self._lock:
            self._balances[owner_id] = amount

    async def has_enough_credits(self, owner_id: str, nodes: Sequence[NodeLike]) -> CreditCheck:
        required = calculate_workflow_cost(nodes)
        async with self._lock:
            remaining = self.balance(owner_id)
        return CreditCheck(has_credits=remaining >= required, required=required, remaining=remaining)

    async def deduct_credits(self, owner_id: str, amount: int) -> CreditDeduction:
        async with self._lock:
            remaining = self.balance(owner_id)
            if remaining < amount:
                logger.warning("Credit deduction refused", owner_id=owner_id, amount=amount, remaining=remaining)
                return CreditDeduction(success=False, remaining=remaining, error="Insufficient credits")
            remaining -= amount
            self._balances[owner_id] = remaining

        logger.info("Credits deducted", owner_id=owner_id, amount=amount, remaining=remaining)
        return CreditDeduction(success=True, remaining=remaining)
