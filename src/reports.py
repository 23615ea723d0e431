"""
reports.py - tabular views and exports of a trip

Turns ledger results into pandas DataFrames for display and builds an XLSX
workbook for download. This is the presentation boundary: amounts are
rounded to 2 decimals here, never earlier.
"""

from io import BytesIO
import math
from typing import Dict, List

import pandas as pd

from src.ledger import EPSILON, ORDER_MEMBERS, compute_balances, compute_settlements, compute_stats, round_money
from src.models import Expense, Transaction, Trip, TripStats


def calculate_percentage(value: float, total: float) -> int:
    if not total:
        return 0
    return int(math.floor(value / total * 100 + 0.5))


def calculate_split_amount(amount: float, people: int) -> float:
    """Per-person share rounded to cents; 0 when nobody splits."""
    if not people:
        return 0.0
    return round_money(amount / people)


def format_currency(amount: float, symbol: str = "₹") -> str:
    """Whole-unit display string, e.g. 12500.4 -> '₹12,500', -3500 -> '-₹3,500'."""
    if amount is None:
        return f"{symbol}0"
    whole = int(math.floor(abs(amount) + 0.5))
    sign = "-" if amount < 0 and whole else ""
    return f"{sign}{symbol}{whole:,}"


def balance_status(balance: float) -> str:
    if balance > EPSILON:
        return "gets back"
    if balance < -EPSILON:
        return "owes"
    return "settled"


def balances_frame(balances: Dict[str, float]) -> pd.DataFrame:
    rows = [
        {"member": m, "balance": round_money(v), "status": balance_status(round_money(v))}
        for m, v in balances.items()
    ]
    return pd.DataFrame(rows, columns=["member", "balance", "status"])


def settlements_frame(transactions: List[Transaction]) -> pd.DataFrame:
    rows = [t.to_dict() for t in transactions]
    return pd.DataFrame(rows, columns=["from", "to", "amount"])


def category_frame(stats: TripStats) -> pd.DataFrame:
    """Category totals with their integer share of the trip total, largest first."""
    rows = []
    for cat, amt in stats.category_breakdown.items():
        rows.append({
            "category": cat,
            "amount": round_money(amt),
            "percent": calculate_percentage(amt, stats.total_expenses),
        })
    df = pd.DataFrame(rows, columns=["category", "amount", "percent"])
    return df.sort_values("amount", ascending=False, kind="stable").reset_index(drop=True)


def expenses_frame(expenses: List[Expense]) -> pd.DataFrame:
    rows = []
    for e in expenses:
        rows.append({
            "id": e.id,
            "date": e.date,
            "title": e.title,
            "category": e.category,
            "amount": float(e.amount),
            "paid_by": e.paid_by,
            # empty split group means "everyone on the trip"
            "split_between": ", ".join(e.split_between) if e.split_between else "everyone",
            "description": e.description,
        })
    return pd.DataFrame(
        rows,
        columns=["id", "date", "title", "category", "amount", "paid_by", "split_between", "description"],
    )


def export_trip_xlsx(trip: Trip, order: str = ORDER_MEMBERS) -> bytes:
    """
    Build an XLSX workbook for the trip with sheets:
      expenses, balances, settlements, categories
    """
    balances = compute_balances(trip.members, trip.expenses)
    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        expenses_frame(trip.expenses).to_excel(writer, index=False, sheet_name="expenses")
        balances_frame(balances).to_excel(writer, index=False, sheet_name="balances")
        settlements_frame(compute_settlements(balances, order=order)).to_excel(
            writer, index=False, sheet_name="settlements"
        )
        category_frame(compute_stats(trip.expenses)).to_excel(writer, index=False, sheet_name="categories")
    buffer.seek(0)
    return buffer.getvalue()
