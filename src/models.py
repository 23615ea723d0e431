"""
models.py - Data model definitions

Dataclasses shared by the ledger core, the trip store and the reports.
Trips and expenses are serialized to/from simple dicts so they can be
persisted as JSON in data/trips_data.json.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


def _to_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    try:
        return float(str(value).strip())
    except Exception:
        return default


def _to_str_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(x).strip() for x in value if str(x).strip()]


@dataclass
class MemberDetails:
    """Display information for a trip member. The ledger never reads it."""
    name: str = ""
    email: str = ""
    role: str = "member"

    def to_dict(self) -> Dict:
        return {"name": self.name, "email": self.email, "role": self.role}

    @staticmethod
    def from_dict(d: Dict) -> "MemberDetails":
        d = d or {}
        return MemberDetails(
            name=str(d.get("name", "") or ""),
            email=str(d.get("email", "") or ""),
            role=str(d.get("role", "member") or "member"),
        )


@dataclass
class Expense:
    """
    A single payment made on behalf of the group.

    Fields:
      - id: string id assigned by the store
      - amount: positive total amount; expenses with a non-positive amount are skipped
      - paid_by: member id of the payer
      - split_between: member ids sharing the cost; empty means "the whole trip"
      - category: e.g. Food, Travel; "Other" when not given
      - title / description: free text for display
      - date: ISO timestamp string
      - members_snapshot: trip members at the time the expense was recorded
    """
    id: str = ""
    amount: float = 0.0
    paid_by: str = ""
    split_between: List[str] = field(default_factory=list)
    category: str = "Other"
    title: str = "General Expense"
    description: str = ""
    date: str = ""
    members_snapshot: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        """
        Convert to a plain dict suitable for JSON serialization.
        """
        return {
            "id": self.id,
            "amount": self.amount,
            "paid_by": self.paid_by,
            "split_between": list(self.split_between),
            "category": self.category,
            "title": self.title,
            "description": self.description,
            "date": self.date,
            "members_snapshot": list(self.members_snapshot),
        }

    @staticmethod
    def from_dict(d: Dict) -> "Expense":
        """
        Construct an Expense from a dict (inverse of to_dict).
        Accepts camelCase keys (paidBy, splitBetween) as written by the mobile
        client. Missing or unparseable values fall back to defaults; an amount
        that cannot be parsed becomes 0.0 so the ledger skips the expense.
        """
        paid_by = d.get("paid_by", d.get("paidBy", ""))
        split = d.get("split_between", d.get("splitBetween", []))
        snapshot = d.get("members_snapshot", d.get("membersSnapshot", []))
        return Expense(
            id=str(d.get("id", "") or ""),
            amount=_to_float(d.get("amount", 0.0)),
            paid_by=str(paid_by or "").strip(),
            split_between=_to_str_list(split),
            category=str(d.get("category", "") or "").strip() or "Other",
            title=str(d.get("title", "") or "").strip() or "General Expense",
            description=str(d.get("description", "") or ""),
            date=str(d.get("date", "") or ""),
            members_snapshot=_to_str_list(snapshot),
        )


@dataclass
class Trip:
    """A trip snapshot: ordered unique members plus their expenses."""
    id: str = ""
    name: str = ""
    members: List[str] = field(default_factory=list)
    member_details: Dict[str, MemberDetails] = field(default_factory=dict)
    expenses: List[Expense] = field(default_factory=list)
    is_archived: bool = False
    created_at: str = ""

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "name": self.name,
            "members": list(self.members),
            "member_details": {m: det.to_dict() for m, det in self.member_details.items()},
            "expenses": [e.to_dict() for e in self.expenses],
            "is_archived": self.is_archived,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(d: Dict) -> "Trip":
        # members must stay unique; keep first occurrence order
        members: List[str] = []
        for m in _to_str_list(d.get("members", [])):
            if m not in members:
                members.append(m)
        details_raw = d.get("member_details", d.get("memberDetails", {})) or {}
        details = {}
        if isinstance(details_raw, dict):
            details = {str(k): MemberDetails.from_dict(v) for k, v in details_raw.items()}
        expenses_raw = d.get("expenses", []) or []
        return Trip(
            id=str(d.get("id", "") or ""),
            name=str(d.get("name", "") or ""),
            members=members,
            member_details=details,
            expenses=[Expense.from_dict(e) for e in expenses_raw if isinstance(e, dict)],
            is_archived=bool(d.get("is_archived", d.get("isArchived", False))),
            created_at=str(d.get("created_at", "") or ""),
        )


@dataclass(frozen=True)
class Transaction:
    """`from_member` must pay `to_member` the given amount (2 decimals)."""
    from_member: str
    to_member: str
    amount: float

    def to_dict(self) -> Dict:
        return {"from": self.from_member, "to": self.to_member, "amount": self.amount}


@dataclass
class TripStats:
    total_expenses: float = 0.0
    expense_count: int = 0
    category_breakdown: Dict[str, float] = field(default_factory=dict)
    # amount fronted by each payer, not amount consumed
    member_spending: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "total_expenses": self.total_expenses,
            "expense_count": self.expense_count,
            "category_breakdown": dict(self.category_breakdown),
            "member_spending": dict(self.member_spending),
        }
