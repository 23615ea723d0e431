"""
ledger.py - balance aggregation, settlement planning and trip statistics

Everything here is a pure function of the snapshot passed in: no I/O, no
state kept between calls. Callers recompute from scratch whenever the trip
changes and simply drop results computed from an older snapshot.

Conventions:
  - balance > 0: the member is owed money (creditor)
  - balance < 0: the member owes money (debtor)
  - balances are left unrounded; rounding happens only when settling or
    presenting, so error does not compound across many expenses
"""

import logging
import math
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from src.models import Expense, Transaction, Trip, TripStats

# below this a balance is considered settled
EPSILON = 0.01

DEFAULT_CATEGORY = "Other"

# settlement orders
ORDER_MEMBERS = "members"
ORDER_LARGEST_FIRST = "largest_first"
SETTLEMENT_ORDERS = (ORDER_MEMBERS, ORDER_LARGEST_FIRST)

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


SplitPolicy = Callable[[Expense, Sequence[str]], List[str]]


def round_money(value: float) -> float:
    """Round half-up to 2 decimals (0.125 -> 0.13, -0.125 -> -0.13)."""
    d = Decimal(repr(float(value)))
    if not d.is_finite():
        return float(value)
    with localcontext() as ctx:
        # enough digits for the integer part plus cents
        ctx.prec = max(ctx.prec, d.adjusted() + 3)
        return float(d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def is_valid_expense(expense: Expense) -> bool:
    """True when the expense has a payer and a finite positive amount."""
    paid_by = getattr(expense, "paid_by", None)
    if not isinstance(paid_by, str) or not paid_by.strip():
        return False
    amount = getattr(expense, "amount", None)
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return False
    return math.isfinite(amount) and amount > 0


# -----------------------
# Split policies
# -----------------------
def split_with_current_members(expense: Expense, members: Sequence[str]) -> List[str]:
    """
    Explicit split group, else every member of the trip *now*.

    A member added later therefore takes a share of older
    "split with everyone" expenses.
    """
    if expense.split_between:
        return list(expense.split_between)
    return list(members)


def split_with_recorded_members(expense: Expense, members: Sequence[str]) -> List[str]:
    """
    Explicit split group, else the members recorded with the expense.
    Falls back to the current members for expenses recorded without a snapshot.
    """
    if expense.split_between:
        return list(expense.split_between)
    if expense.members_snapshot:
        return list(expense.members_snapshot)
    return list(members)


# -----------------------
# Balance aggregator
# -----------------------
def compute_balances(
    members: Sequence[str],
    expenses: Iterable[Expense],
    split_policy: SplitPolicy = split_with_current_members,
) -> Dict[str, float]:
    """
    Reduce the expense list into one net balance per member.

    Every member starts at 0. For each valid expense the payer is credited the
    full amount and each member of the split group is debited an equal share.
    Payers or splitters outside `members` get their own entry, appended after
    the members in first-seen order. Invalid expenses are skipped without any
    partial effect.
    """
    balances: Dict[str, float] = {m: 0.0 for m in members}
    for e in expenses:
        if not is_valid_expense(e):
            logger.debug("Skipping expense id=%r (payer=%r, amount=%r)",
                         getattr(e, "id", None), getattr(e, "paid_by", None), getattr(e, "amount", None))
            continue
        amount = float(e.amount)
        balances[e.paid_by] = balances.get(e.paid_by, 0.0) + amount

        splitters = split_policy(e, members)
        if not splitters:
            logger.warning("Expense id=%r has nobody to split with; payer keeps the full credit", e.id)
        share = amount / max(1, len(splitters))
        for p in splitters:
            balances[p] = balances.get(p, 0.0) - share
    return balances


# -----------------------
# Settlement planner
# -----------------------
def compute_settlements(balances: Dict[str, float], order: str = ORDER_MEMBERS) -> List[Transaction]:
    """
    Greedy debtor/creditor matching.

    Balances rounded to cents decide who is a debtor (< -EPSILON) or a
    creditor (> EPSILON); everyone else is settled and left out. Matching
    runs on the unrounded amounts.
    With ORDER_MEMBERS both lists keep the order of `balances`; with
    ORDER_LARGEST_FIRST they are sorted by amount, largest first.
    A two-pointer sweep then pays the current creditor from the current
    debtor until one of them is within EPSILON of zero.

    Emitted amounts are the differences of the rounded running total, so
    any run of consecutive payments is off by at most one cent. Each
    member's payments are consecutive in the sweep.
    """
    if order not in SETTLEMENT_ORDERS:
        raise ValueError(f"Unknown settlement order: {order!r}")

    debtors: List[List] = []
    creditors: List[List] = []
    for member, value in balances.items():
        net = round_money(value)
        if net < -EPSILON:
            debtors.append([member, -float(value)])
        elif net > EPSILON:
            creditors.append([member, float(value)])

    if order == ORDER_LARGEST_FIRST:
        debtors.sort(key=lambda x: x[1], reverse=True)
        creditors.sort(key=lambda x: x[1], reverse=True)

    transactions: List[Transaction] = []
    matched = emitted = 0.0
    i = j = 0
    while i < len(debtors) and j < len(creditors):
        debt = debtors[i]
        credit = creditors[j]
        amount = min(debt[1], credit[1])
        matched += amount
        pay = round_money(round_money(matched) - emitted)
        if pay > 0:
            transactions.append(Transaction(debt[0], credit[0], pay))
            emitted += pay
        debt[1] -= amount
        credit[1] -= amount
        if debt[1] < EPSILON:
            i += 1
        if credit[1] < EPSILON:
            j += 1
    return transactions


# -----------------------
# Stats aggregator
# -----------------------
def compute_stats(expenses: Iterable[Expense]) -> TripStats:
    """
    Totals, per-category amounts and per-payer amounts over valid expenses.
    Spending here is the amount a member fronted, not what they consumed.
    """
    stats = TripStats()
    for e in expenses:
        if not is_valid_expense(e):
            continue
        amount = float(e.amount)
        stats.total_expenses += amount
        stats.expense_count += 1
        cat = str(e.category or "").strip() or DEFAULT_CATEGORY
        stats.category_breakdown[cat] = stats.category_breakdown.get(cat, 0.0) + amount
        stats.member_spending[e.paid_by] = stats.member_spending.get(e.paid_by, 0.0) + amount
    return stats


# -----------------------
# Trip-level entry points
# -----------------------
def settle_trip(
    trip: Optional[Trip],
    split_policy: SplitPolicy = split_with_current_members,
    order: str = ORDER_MEMBERS,
) -> List[Transaction]:
    """Balances then settlements for one trip snapshot; [] for no trip."""
    if trip is None:
        return []
    return compute_settlements(compute_balances(trip.members, trip.expenses, split_policy), order=order)


def trip_stats(trip: Optional[Trip]) -> TripStats:
    if trip is None:
        return TripStats()
    return compute_stats(trip.expenses)
