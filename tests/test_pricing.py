"""
Unit tests for credit metering
"""

import asyncio

import pytest

from flowys.models.workflow import Node
from flowys.services.pricing import InMemoryCreditLedger, UnlimitedCreditLedger, calculate_workflow_cost

NODES = [
    {"id": "in", "type": "input"},
    {"id": "ai", "type": "ai"},
    {"id": "api", "type": "api"},
    {"id": "out", "type": "output"},
]


def test_cost_table():
    """input/output are free, ai costs 10, unknown types cost 1"""
    assert calculate_workflow_cost(NODES) == 11
    assert calculate_workflow_cost([Node(id="x", type="custom")]) == 1
    assert calculate_workflow_cost([]) == 0


@pytest.mark.asyncio
async def test_check_and_deduct():
    ledger = InMemoryCreditLedger(default_balance=15)

    check = await ledger.has_enough_credits("owner", NODES)
    deduction = await ledger.deduct_credits("owner", check.required)
    second = await ledger.has_enough_credits("owner", NODES)

    assert check.to_dict() == {"hasCredits": True, "required": 11, "remaining": 15}
    assert deduction.success
    assert deduction.remaining == 4
    assert not second.has_credits
    assert ledger.balance("someone-else") == 15


@pytest.mark.asyncio
async def test_overdraw_is_refused():
    ledger = InMemoryCreditLedger(default_balance=5)

    deduction = await ledger.deduct_credits("owner", 6)

    assert not deduction.success
    assert deduction.error == "Insufficient credits"
    assert ledger.balance("owner") == 5


@pytest.mark.asyncio
async def test_concurrent_deductions_never_overdraw():
    """Ten parallel charges of 3 against a balance of 10"""
    ledger = InMemoryCreditLedger(default_balance=10)

    results = await asyncio.gather(*(ledger.deduct_credits("owner", 3) for _ in range(10)))

    assert sum(1 for r in results if r.success) == 3
    assert ledger.balance("owner") == 1


@pytest.mark.asyncio
async def test_unlimited_ledger():
    ledger = UnlimitedCreditLedger()

    check = await ledger.has_enough_credits("owner", NODES)
    deduction = await ledger.deduct_credits("owner", 1_000_000)

    assert check.has_credits
    assert check.required == 11
    assert deduction.success
