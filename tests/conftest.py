from datetime import date

import pytest

from bookkeeping.domain import Account, Branch, Market, Transaction, TransactionType


def make_tx(
    id="t1",
    when="2025-12-01",
    type=TransactionType.REVENUE,
    amount=100,
    code="1.1US",
    branch=Branch.HN,
    market=Market.US,
):
    return Transaction(
        id=id,
        date=date.fromisoformat(when),
        type=type,
        source="test",
        branch=branch,
        market=market,
        account_code=code,
        description="",
        amount=amount,
        method="CK",
    )


@pytest.fixture
def tx():
    return make_tx


@pytest.fixture
def accounts():
    return (
        Account(id="1", code="1.1US", name="Thu tiền từ bill", category="Thu",
                type=TransactionType.REVENUE, branch=Branch.HN, market=Market.US),
        Account(id="11", code="6", name="Chi Ads", category="Chi phí ADS",
                type=TransactionType.EXPENSE, branch=Branch.OTHER, market=Market.NONE),
    )
