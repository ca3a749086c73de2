"""
Demo Data Seeding.

Populates an empty ``MemoryAdapter`` with a small, deterministic data set
under the demo tenant: four accounts, a handful of categories, six months
of salary, rent, utility and grocery transactions, and one recurring of
each kind.

Ids are fixed (categories, groups, accounts) or derived with ``uuid5``
from the row's business key (transactions, recurrings), so seeding twice
on the same day yields identical rows.  Dates are relative to *today*.
"""

from __future__ import annotations

import datetime as dt
import uuid
from dataclasses import dataclass
from typing import Optional

from dateutil.relativedelta import relativedelta

from budgeteer.models.enums import (
    AccountType,
    RecurringType,
    TableName,
    TransactionType,
)
from budgeteer.storage.base import Row, StorageAdapter, utc_now

SEED_ACTOR_ID: str = "system:demo-seed"
_NAMESPACE: uuid.UUID = uuid.UUID("6f1f4f2e-5c1a-4d55-9b0e-3d7f0c2a9e41")
_HISTORY_MONTHS: int = 6

# ---------------------------------------------------------------------------
# Fixed ids
# ---------------------------------------------------------------------------

GROUP_EMPLOYER = "a9cfa027-8f5c-489a-8b93-f9b4f5735044"
GROUP_BILLS = "235e6d59-5ecc-4ae3-a01f-83f3c395449c"
GROUP_GROCERIES = "046e648c-123f-462c-908b-d1e0831e6a11"
GROUP_ACCOUNTS = "2a1caa0e-5767-4b99-8bdd-8a48fc42e72b"

CAT_BANK = "ddb8fefe-4b2e-4bb9-9c60-07de2e7286e7"
CAT_CREDIT = "fdb5a25c-b05c-4e36-9c74-1c02b8cee699"
CAT_CASH = "5d192f78-41e8-413c-9457-c9d68f9decf1"

TXCAT_ACCOUNT_OPS = "5b3daefa-e88c-43f9-a8e4-0c4aab18fcf9"
TXCAT_SALARY = "8be7e399-75fb-4da0-b043-3b7d7e0082ea"
TXCAT_GROCERIES = "61484698-2405-4b17-8e14-71a43a3f91e5"
TXCAT_RENT = "ef228637-4334-4d7d-8697-84dd19b1e173"
TXCAT_ELECTRICITY = "4f8111aa-b5ef-468b-800d-f9d51a8e7dca"

ACC_CHECKING = "019313ea-448f-7c15-9b2e-7d7d8e9f0a1b"
ACC_SAVINGS = "019313ea-448f-7c15-9b2e-7d2d3e4f5a6b"
ACC_CREDIT = "019313ea-448f-7c15-9b2e-7d5d6e7f8a90"
ACC_CASH = "019313ea-448f-7c15-9b2e-7d1c2d3e4f5a"


@dataclass(frozen=True)
class MonthlyTemplate:
    name: str
    day: int
    amount: float
    account_id: str
    category_id: str
    type: TransactionType
    payee_name: Optional[str] = None


MONTHLY_TEMPLATES: tuple[MonthlyTemplate, ...] = (
    MonthlyTemplate("Salary", 15, 5000.0, ACC_CHECKING, TXCAT_SALARY, TransactionType.INCOME, "Employer Inc."),
    MonthlyTemplate("Rent", 1, -1500.0, ACC_CHECKING, TXCAT_RENT, TransactionType.EXPENSE, "Landlord"),
    MonthlyTemplate("Electricity", 5, -120.0, ACC_CHECKING, TXCAT_ELECTRICITY, TransactionType.EXPENSE, "Power Co."),
    MonthlyTemplate("Groceries", 10, -85.4, ACC_CREDIT, TXCAT_GROCERIES, TransactionType.EXPENSE, "Fresh Market"),
    MonthlyTemplate("Groceries", 24, -92.15, ACC_CASH, TXCAT_GROCERIES, TransactionType.EXPENSE, "Corner Shop"),
)

OPEN_BALANCES: dict[str, float] = {
    ACC_CHECKING: 500.0,
    ACC_SAVINGS: 50000.0,
    ACC_CREDIT: -2000.0,
    ACC_CASH: 200.0,
}


def seed_demo_data(
    adapter: StorageAdapter, tenant_id: str, *, today: Optional[dt.date] = None
) -> int:
    """Insert the demo data set and return the number of rows written."""
    today = today or utc_now().date()
    rows: list[tuple[TableName, Row]] = []

    for group_id, name, order in (
        (GROUP_EMPLOYER, "Employer", 4),
        (GROUP_BILLS, "Bills", 3),
        (GROUP_GROCERIES, "Groceries", 2),
        (GROUP_ACCOUNTS, "Accounts", 1),
    ):
        rows.append((TableName.TRANSACTION_GROUPS, {"id": group_id, "name": name, "display_order": order}))

    for category_id, name, group_id, tx_type in (
        (TXCAT_SALARY, "Salary", GROUP_EMPLOYER, TransactionType.INCOME),
        (TXCAT_RENT, "Rent", GROUP_BILLS, TransactionType.EXPENSE),
        (TXCAT_ELECTRICITY, "Electricity", GROUP_BILLS, TransactionType.EXPENSE),
        (TXCAT_GROCERIES, "Groceries", GROUP_GROCERIES, TransactionType.EXPENSE),
        (TXCAT_ACCOUNT_OPS, "Account Operations", GROUP_ACCOUNTS, TransactionType.TRANSFER),
    ):
        rows.append((
            TableName.TRANSACTION_CATEGORIES,
            {"id": category_id, "name": name, "group_id": group_id, "type": tx_type.value},
        ))

    for category_id, name, account_type, order in (
        (CAT_BANK, "Bank", AccountType.ASSET, 3),
        (CAT_CREDIT, "Credit Card", AccountType.LIABILITY, 2),
        (CAT_CASH, "Cash", AccountType.ASSET, 1),
    ):
        rows.append((
            TableName.ACCOUNT_CATEGORIES,
            {"id": category_id, "name": name, "type": account_type.value, "display_order": order},
        ))

    transactions = _history(today)
    totals: dict[str, float] = dict(OPEN_BALANCES)
    for txn in transactions:
        totals[str(txn["account_id"])] += float(txn["amount"])

    for account_id, name, category_id, order in (
        (ACC_CHECKING, "Checking", CAT_BANK, 4),
        (ACC_SAVINGS, "Savings", CAT_BANK, 3),
        (ACC_CREDIT, "Credit Card", CAT_CREDIT, 2),
        (ACC_CASH, "Cash", CAT_CASH, 1),
    ):
        rows.append((
            TableName.ACCOUNTS,
            {
                "id": account_id,
                "name": name,
                "category_id": category_id,
                "currency_code": "USD",
                "open_balance": OPEN_BALANCES[account_id],
                "balance": round(totals[account_id], 2),
                "display_order": order,
            },
        ))

    rows.extend((TableName.TRANSACTIONS, txn) for txn in transactions)
    rows.extend((TableName.RECURRINGS, rec) for rec in _recurrings(today))

    for table, row in rows:
        adapter.insert(table, {**row, "tenant_id": tenant_id, "created_by": SEED_ACTOR_ID})
    return len(rows)


def _history(today: dt.date) -> list[Row]:
    first = today.replace(day=1) - relativedelta(months=_HISTORY_MONTHS)
    transactions: list[Row] = []
    for offset in range(_HISTORY_MONTHS + 1):
        month = first + relativedelta(months=offset)
        for template in MONTHLY_TEMPLATES:
            occurrence = month.replace(day=template.day)
            if occurrence > today:
                continue
            transactions.append({
                "id": _derived_id("transaction", template.name, template.account_id, occurrence.isoformat()),
                "name": template.name,
                "amount": template.amount,
                "date": occurrence.isoformat(),
                "account_id": template.account_id,
                "category_id": template.category_id,
                "type": template.type.value,
                "payee_name": template.payee_name,
                "tags": [],
                "is_void": False,
            })
    return transactions


def _recurrings(today: dt.date) -> list[Row]:
    next_first = today.replace(day=1) + relativedelta(months=1)
    next_fifteenth = today.replace(day=15) if today.day <= 15 else today.replace(day=15) + relativedelta(months=1)
    base = {"is_active": True, "interval_months": 1, "currency_code": "USD"}
    return [
        {
            **base,
            "id": _derived_id("recurring", "salary"),
            "name": "Salary",
            "source_account_id": ACC_CHECKING,
            "category_id": TXCAT_SALARY,
            "amount": 5000.0,
            "type": TransactionType.INCOME.value,
            "recurring_type": RecurringType.STANDARD.value,
            "next_occurrence_date": next_fifteenth.isoformat(),
            "auto_apply_enabled": True,
        },
        {
            **base,
            "id": _derived_id("recurring", "rent"),
            "name": "Rent",
            "source_account_id": ACC_CHECKING,
            "category_id": TXCAT_RENT,
            "amount": 1500.0,
            "type": TransactionType.EXPENSE.value,
            "recurring_type": RecurringType.STANDARD.value,
            "next_occurrence_date": next_first.isoformat(),
            "auto_apply_enabled": True,
        },
        {
            **base,
            "id": _derived_id("recurring", "electricity"),
            "name": "Electricity",
            "source_account_id": ACC_CHECKING,
            "category_id": TXCAT_ELECTRICITY,
            "amount": 120.0,
            "type": TransactionType.EXPENSE.value,
            "recurring_type": RecurringType.STANDARD.value,
            "next_occurrence_date": next_first.replace(day=5).isoformat(),
            "is_amount_flexible": True,
            "is_date_flexible": True,
            "auto_apply_enabled": True,
        },
        {
            **base,
            "id": _derived_id("recurring", "savings"),
            "name": "Monthly Savings",
            "source_account_id": ACC_CHECKING,
            "transfer_account_id": ACC_SAVINGS,
            "category_id": TXCAT_ACCOUNT_OPS,
            "amount": 300.0,
            "type": TransactionType.TRANSFER.value,
            "recurring_type": RecurringType.TRANSFER.value,
            "next_occurrence_date": next_first.isoformat(),
            "auto_apply_enabled": True,
        },
        {
            **base,
            "id": _derived_id("recurring", "credit-card"),
            "name": "Credit Card Payment",
            "source_account_id": ACC_CHECKING,
            "transfer_account_id": ACC_CREDIT,
            "category_id": TXCAT_ACCOUNT_OPS,
            "type": TransactionType.TRANSFER.value,
            "recurring_type": RecurringType.CREDIT_CARD_PAYMENT.value,
            "next_occurrence_date": next_first.replace(day=20).isoformat(),
            "is_amount_flexible": True,
            "auto_apply_enabled": False,
        },
    ]


def _derived_id(*parts: str) -> str:
    return str(uuid.uuid5(_NAMESPACE, ":".join(parts)))
