"""
tracker.py - trip store and persistence

Responsibilities:
 - keep an in-memory list of Trip objects
 - persist/load them atomically to a local JSON file
 - provide the mutating helpers a UI needs:
     create_trip, add_member/remove_member, add_expense/update_expense/
     delete_expense, set_archived, delete_trip
 - hand snapshots of a trip to src.ledger for balances, settlements and stats

Balances are never cached here: every read recomputes from the current
trip state.
"""

from typing import List, Dict, Optional
import copy
import datetime
import json
import logging
import math
import os
import shutil
import tempfile
import time

from src.models import Expense, MemberDetails, Transaction, Trip, TripStats
from src import ledger

# location of the JSON persistence file (relative to src/)
_default_data_file = os.path.join(os.path.dirname(__file__), "..", "data", "trips_data.json")
DATA_FILE = os.getenv("TRIP_LEDGER_DATA_FILE") or _default_data_file

# settlement order used by the store unless one is passed in
SETTLEMENT_ORDER = (os.getenv("TRIP_LEDGER_SETTLEMENT_ORDER") or ledger.ORDER_MEMBERS).strip()

# categories offered by the add-expense form
DEFAULT_CATEGORIES = [
    "Food",
    "Travel",
    "Stay",
    "Activities",
    "Shopping",
    "Other",
]

# ensure a logger is available
logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


def _now_iso() -> str:
    return datetime.datetime.now().isoformat(timespec="seconds")


class TripTracker:
    """
    Single-instance style store. The caller creates one TripTracker()
    and uses its methods to read/write trips.
    """

    def __init__(self, data_file: Optional[str] = None, settlement_order: Optional[str] = None):
        self.data_file = data_file or DATA_FILE
        order = settlement_order or SETTLEMENT_ORDER
        if order not in ledger.SETTLEMENT_ORDERS:
            logger.warning("Unknown settlement order %r, using %r", order, ledger.ORDER_MEMBERS)
            order = ledger.ORDER_MEMBERS
        self.settlement_order = order
        # in-memory list of Trip objects
        self.trips: List[Trip] = []
        self._last_id = 0
        self.load()

    def _new_id(self) -> str:
        """Millisecond timestamp id, bumped when two ids land in the same millisecond."""
        candidate = int(time.time() * 1000)
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return str(candidate)

    # -----------------------
    # Trips
    # -----------------------
    def create_trip(
        self,
        name: str,
        members: Optional[List[str]] = None,
        member_details: Optional[Dict[str, MemberDetails]] = None,
    ) -> Trip:
        """Create and persist a trip. Duplicate or blank member ids are dropped."""
        name = (name or "").strip()
        if not name:
            raise ValueError("Trip name is required")
        unique: List[str] = []
        for m in members or []:
            m = (m or "").strip()
            if m and m not in unique:
                unique.append(m)
        details = dict(member_details or {})
        for m in unique:
            details.setdefault(m, MemberDetails(name=m))
        trip = Trip(
            id=self._new_id(),
            name=name,
            members=unique,
            member_details=details,
            expenses=[],
            created_at=_now_iso(),
        )
        self.trips.append(trip)
        self.save()
        logger.info("Created trip id=%s (%s) with %d members", trip.id, trip.name, len(unique))
        return trip

    def _find_trip(self, trip_id: str) -> Optional[Trip]:
        for t in self.trips:
            if t.id == str(trip_id):
                return t
        return None

    def get_trip(self, trip_id: str) -> Optional[Trip]:
        """Return a snapshot (deep copy) of the trip, or None."""
        trip = self._find_trip(trip_id)
        if trip is None:
            logger.info("Trip id=%s not found", trip_id)
            return None
        return copy.deepcopy(trip)

    def list_trips(self, include_archived: bool = True) -> List[Trip]:
        return [copy.deepcopy(t) for t in self.trips if include_archived or not t.is_archived]

    def delete_trip(self, trip_id: str) -> bool:
        trip = self._find_trip(trip_id)
        if trip is None:
            logger.info("Trip id=%s not found", trip_id)
            return False
        self.trips.remove(trip)
        self.save()
        logger.info("Deleted trip id=%s. Remaining trips=%d.", trip_id, len(self.trips))
        return True

    def set_archived(self, trip_id: str, is_archived: bool = True) -> bool:
        trip = self._find_trip(trip_id)
        if trip is None:
            return False
        trip.is_archived = bool(is_archived)
        self.save()
        logger.info("Trip %s %s", trip_id, "archived" if is_archived else "unarchived")
        return True

    # -----------------------
    # Members
    # -----------------------
    def add_member(self, trip_id: str, member_id: str, name: str = "", email: str = "",
                   role: str = "member") -> bool:
        """
        Add a member. Returns False for an unknown trip or an existing member.
        Expenses without an explicit split group are shared with the new
        member from now on.
        """
        member_id = (member_id or "").strip()
        if not member_id:
            raise ValueError("Member id is required")
        trip = self._find_trip(trip_id)
        if trip is None or member_id in trip.members:
            return False
        trip.members.append(member_id)
        trip.member_details[member_id] = MemberDetails(name=name or member_id, email=email, role=role)
        self.save()
        logger.info("Member %s added to trip %s", member_id, trip_id)
        return True

    def remove_member(self, trip_id: str, member_id: str) -> bool:
        """
        Remove a member from the trip roster. Expenses referencing the member
        are kept, so the member still shows up in balances when owed or owing.
        """
        trip = self._find_trip(trip_id)
        if trip is None or member_id not in trip.members:
            return False
        trip.members.remove(member_id)
        trip.member_details.pop(member_id, None)
        self.save()
        logger.info("Member %s removed from trip %s", member_id, trip_id)
        return True

    # -----------------------
    # Expenses
    # -----------------------
    @staticmethod
    def _clean_amount(amount) -> float:
        if isinstance(amount, bool):
            raise ValueError(f"Invalid amount: {amount!r}")
        try:
            amount = float(amount)
        except (TypeError, ValueError):
            raise ValueError(f"Invalid amount: {amount!r}")
        if not math.isfinite(amount) or not round(amount, 2) > 0:
            raise ValueError("Amount must be greater than zero")
        return round(amount, 2)

    @staticmethod
    def _clean_payer(paid_by) -> str:
        paid_by = str(paid_by or "").strip()
        if not paid_by:
            raise ValueError("Payer is required")
        return paid_by

    @staticmethod
    def _clean_split(split_between) -> List[str]:
        """A single member id is wrapped in a list; anything but a list or tuple is rejected."""
        if split_between is None:
            return []
        if isinstance(split_between, str):
            split_between = [split_between]
        if not isinstance(split_between, (list, tuple)):
            raise ValueError(f"split_between must be a list of member ids, got {split_between!r}")
        return [str(m).strip() for m in split_between if str(m).strip()]

    def add_expense(
        self,
        trip_id: str,
        amount: float,
        paid_by: str,
        split_between: Optional[List[str]] = None,
        category: str = "Other",
        title: str = "",
        description: str = "",
        date: str = "",
    ) -> Optional[Expense]:
        """
        Create an Expense, prepend it to the trip (newest first) and persist.
        Returns None when the trip does not exist.
        """
        amount = self._clean_amount(amount)
        paid_by = self._clean_payer(paid_by)
        split_between = self._clean_split(split_between)
        trip = self._find_trip(trip_id)
        if trip is None:
            logger.info("Trip id=%s not found", trip_id)
            return None
        exp = Expense(
            id=self._new_id(),
            amount=amount,
            paid_by=paid_by,
            split_between=split_between,
            category=str(category or "").strip() or "Other",
            title=str(title or "").strip() or "General Expense",
            description=description or "",
            date=date or _now_iso(),
            members_snapshot=list(trip.members),
        )
        trip.expenses.insert(0, exp)
        self.save()
        return exp

    def update_expense(self, trip_id: str, expense_id: str, **kwargs) -> Optional[Expense]:
        """
        Update fields of an existing expense. Supported kwargs:
        amount, paid_by, split_between, category, title, description, date.
        Values are checked like add_expense before anything changes.
        Returns the updated Expense or None if not found.
        """
        changes = {}
        for key in ("amount", "paid_by", "split_between", "category", "title", "description", "date"):
            if key in kwargs:
                changes[key] = kwargs[key]
        if "amount" in changes:
            changes["amount"] = self._clean_amount(changes["amount"])
        if "paid_by" in changes:
            changes["paid_by"] = self._clean_payer(changes["paid_by"])
        if "split_between" in changes:
            changes["split_between"] = self._clean_split(changes["split_between"])
        if "category" in changes:
            changes["category"] = str(changes["category"] or "").strip() or "Other"
        if "title" in changes:
            changes["title"] = str(changes["title"] or "").strip() or "General Expense"

        trip = self._find_trip(trip_id)
        if trip is None:
            return None
        for e in trip.expenses:
            if e.id == str(expense_id):
                for key, value in changes.items():
                    setattr(e, key, value)
                self.save()
                return copy.deepcopy(e)
        logger.info("Expense id=%s not found in trip %s", expense_id, trip_id)
        return None

    def delete_expense(self, trip_id: str, expense_id: str) -> bool:
        """Remove expense by id. Returns True if deleted, False if not found."""
        trip = self._find_trip(trip_id)
        if trip is None:
            return False
        for i, e in enumerate(trip.expenses):
            if e.id == str(expense_id):
                removed = trip.expenses.pop(i)
                try:
                    self.save()
                except Exception:
                    logger.exception("Error saving after delete")
                    # restore in-memory list if save failed
                    trip.expenses.insert(i, removed)
                    return False
                logger.info("Deleted expense id=%s (category=%s, amount=%s). Remaining expenses=%d.",
                            expense_id, removed.category, removed.amount, len(trip.expenses))
                return True
        logger.info("Expense id=%s not found in trip %s", expense_id, trip_id)
        return False

    # -----------------------
    # Ledger views
    # -----------------------
    def balances(self, trip_id: str,
                 split_policy: ledger.SplitPolicy = ledger.split_with_current_members) -> Dict[str, float]:
        trip = self.get_trip(trip_id)
        if trip is None:
            return {}
        return ledger.compute_balances(trip.members, trip.expenses, split_policy)

    def settlements(self, trip_id: str,
                    split_policy: ledger.SplitPolicy = ledger.split_with_current_members) -> List[Transaction]:
        return ledger.settle_trip(self.get_trip(trip_id), split_policy, order=self.settlement_order)

    def stats(self, trip_id: str) -> TripStats:
        return ledger.trip_stats(self.get_trip(trip_id))

    # -----------------------
    # Persistence
    # -----------------------
    def clear(self):
        """Drop every trip and persist the empty state."""
        self.trips = []
        self.save()

    def save(self):
        """
        Persist all trips as JSON atomically.
        Logs the target path so we can verify the file being written.
        """
        data = {"trips": [t.to_dict() for t in self.trips]}
        target = os.path.abspath(self.data_file)
        dirn = os.path.dirname(target)
        os.makedirs(dirn, exist_ok=True)
        logger.info("Saving data to %s (trips=%d)", target, len(self.trips))
        # atomic write: write to temp file then move
        fd, tmp_path = tempfile.mkstemp(prefix="tmp_trips_", dir=dirn, text=True)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            shutil.move(tmp_path, target)
        except Exception:
            logger.exception("Failed to save data file")
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def load(self):
        """
        Load trips from the JSON file. A missing file leaves the store empty.
        An unreadable file raises, so a later save() cannot overwrite the
        trips it still holds.
        """
        if not os.path.exists(self.data_file):
            return
        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            logger.exception("Failed to read %s", self.data_file)
            raise
        if not isinstance(data, dict):
            logger.error("Unexpected content in %s (%s)", self.data_file, type(data).__name__)
            raise ValueError(f"{self.data_file} does not hold a trips object")
        raw = data.get("trips", []) or []
        self.trips = [Trip.from_dict(t) for t in raw if isinstance(t, dict)]
        # keep new ids above anything already stored
        for t in self.trips:
            for item_id in [t.id] + [e.id for e in t.expenses]:
                try:
                    self._last_id = max(self._last_id, int(item_id))
                except (TypeError, ValueError):
                    continue
