import json

import pytest
from src.ledger import ORDER_LARGEST_FIRST, ORDER_MEMBERS, split_with_recorded_members
from src.models import Transaction
from src.tracker import TripTracker


@pytest.fixture
def tracker(tracker_file):
    return TripTracker(data_file=tracker_file)


@pytest.fixture
def goa(tracker):
    trip = tracker.create_trip("Goa Getaway", ["You", "Rahul", "Neha", "Amit"])
    tracker.add_expense(trip.id, 4000, "Amit", category="Food", title="Lunch")
    tracker.add_expense(trip.id, 20000, "You", category="Stay", title="Villa")
    tracker.add_expense(trip.id, 2000, "Rahul", category="Travel", title="Scooter")
    tracker.add_expense(trip.id, 4000, "Neha", category="Food", title="Drinks")
    return trip


def test_create_trip(tracker):
    trip = tracker.create_trip("  Manali ", ["A", "B", "A", ""])
    assert trip.name == "Manali"
    assert trip.members == ["A", "B"]
    assert trip.member_details["A"].name == "A"
    assert tracker.get_trip(trip.id).members == ["A", "B"]


def test_create_trip_requires_name(tracker):
    with pytest.raises(ValueError):
        tracker.create_trip("   ", ["A"])


def test_add_expense(tracker, goa):
    trip = tracker.get_trip(goa.id)
    assert len(trip.expenses) == 4
    # newest first
    assert trip.expenses[0].title == "Drinks"
    assert trip.expenses[0].members_snapshot == ["You", "Rahul", "Neha", "Amit"]
    assert len({e.id for e in trip.expenses}) == 4


@pytest.mark.parametrize("amount,payer", [(0, "A"), (-5, "A"), ("abc", "A"), (10, "  ")])
def test_add_expense_rejects_bad_input(tracker, amount, payer):
    trip = tracker.create_trip("Trip", ["A", "B"])
    with pytest.raises(ValueError):
        tracker.add_expense(trip.id, amount, payer)
    assert tracker.get_trip(trip.id).expenses == []


def test_add_expense_unknown_trip(tracker):
    assert tracker.add_expense("missing", 10, "A") is None


def test_balances_and_settlements(tracker, goa):
    assert tracker.balances(goa.id) == pytest.approx(
        {"You": 12500, "Rahul": -5500, "Neha": -3500, "Amit": -3500}
    )
    assert tracker.settlements(goa.id) == [
        Transaction("Rahul", "You", 5500.0),
        Transaction("Neha", "You", 3500.0),
        Transaction("Amit", "You", 3500.0),
    ]


def test_largest_first_tracker(tracker_file):
    tracker = TripTracker(data_file=tracker_file, settlement_order=ORDER_LARGEST_FIRST)
    trip = tracker.create_trip("Goa", ["You", "Rahul", "Neha", "Amit"])
    tracker.add_expense(trip.id, 30000, "You")
    tracker.add_expense(trip.id, 2000, "Rahul", split_between=["Neha"])
    assert tracker.settlements(trip.id) == [
        Transaction("Neha", "You", 9500.0),
        Transaction("Amit", "You", 7500.0),
        Transaction("Rahul", "You", 5500.0),
    ]


def test_unknown_settlement_order_falls_back(tracker_file):
    tracker = TripTracker(data_file=tracker_file, settlement_order="shuffle")
    assert tracker.settlement_order == ORDER_MEMBERS


def test_stats(tracker, goa):
    stats = tracker.stats(goa.id)
    assert stats.total_expenses == 30000
    assert stats.expense_count == 4
    assert stats.category_breakdown == {"Food": 8000, "Stay": 20000, "Travel": 2000}
    assert stats.member_spending["You"] == 20000


def test_new_member_shares_old_expenses(tracker):
    trip = tracker.create_trip("Trip", ["A", "B"])
    tracker.add_expense(trip.id, 90, "A")
    assert tracker.add_member(trip.id, "C", name="Chetan", email="c@example.com")
    assert tracker.balances(trip.id) == pytest.approx({"A": 60, "B": -30, "C": -30})
    assert tracker.balances(trip.id, split_policy=split_with_recorded_members) == pytest.approx(
        {"A": 45, "B": -45, "C": 0}
    )
    assert tracker.get_trip(trip.id).member_details["C"].name == "Chetan"


def test_add_member_twice(tracker):
    trip = tracker.create_trip("Trip", ["A"])
    assert not tracker.add_member(trip.id, "A")
    assert not tracker.add_member("missing", "B")
    with pytest.raises(ValueError):
        tracker.add_member(trip.id, " ")


def test_remove_member_keeps_their_debts(tracker):
    trip = tracker.create_trip("Trip", ["A", "B", "C"])
    tracker.add_expense(trip.id, 90, "A", split_between=["A", "B", "C"])
    assert tracker.remove_member(trip.id, "C")
    assert tracker.get_trip(trip.id).members == ["A", "B"]
    assert tracker.balances(trip.id) == pytest.approx({"A": 60, "B": -30, "C": -30})
    assert not tracker.remove_member(trip.id, "C")


def test_update_expense(tracker, goa):
    expense = tracker.get_trip(goa.id).expenses[-1]
    updated = tracker.update_expense(goa.id, expense.id, amount="8000", split_between=["Amit", "You"])
    assert updated.amount == 8000.0
    # paid 8000, owes half of it plus a quarter of villa, scooter and drinks
    assert tracker.balances(goa.id)["Amit"] == pytest.approx(8000 - 4000 - 5000 - 500 - 1000)
    assert tracker.update_expense(goa.id, "missing", amount=1) is None


@pytest.mark.parametrize("changes", [
    {"amount": 0},
    {"amount": -10},
    {"amount": "abc"},
    {"amount": 0.001},
    {"paid_by": "  "},
    {"split_between": 42},
])
def test_update_expense_rejects_bad_input(tracker, goa, changes):
    expense = tracker.get_trip(goa.id).expenses[0]
    with pytest.raises(ValueError):
        tracker.update_expense(goa.id, expense.id, **changes)
    assert tracker.get_trip(goa.id).expenses[0] == expense


def test_single_member_split_is_wrapped_in_list(tracker):
    trip = tracker.create_trip("Trip", ["Rahul", "Neha"])
    expense = tracker.add_expense(trip.id, 50, "Neha", split_between="Rahul")
    assert expense.split_between == ["Rahul"]
    updated = tracker.update_expense(trip.id, expense.id, split_between="Neha")
    assert updated.split_between == ["Neha"]
    assert tracker.balances(trip.id) == pytest.approx({"Rahul": 0, "Neha": 0})
    with pytest.raises(ValueError):
        tracker.add_expense(trip.id, 50, "Neha", split_between={"Rahul": 1})


def test_delete_expense(tracker, goa):
    expense = tracker.get_trip(goa.id).expenses[0]
    assert tracker.delete_expense(goa.id, expense.id)
    assert len(tracker.get_trip(goa.id).expenses) == 3
    assert not tracker.delete_expense(goa.id, expense.id)


def test_snapshots_are_copies(tracker, goa):
    snapshot = tracker.get_trip(goa.id)
    snapshot.expenses.clear()
    snapshot.members.append("Intruder")
    fresh = tracker.get_trip(goa.id)
    assert len(fresh.expenses) == 4
    assert "Intruder" not in fresh.members


def test_archive_and_delete_trip(tracker, goa):
    other = tracker.create_trip("Other", ["X"])
    assert tracker.set_archived(goa.id)
    assert [t.id for t in tracker.list_trips(include_archived=False)] == [other.id]
    assert len(tracker.list_trips()) == 2
    assert tracker.delete_trip(other.id)
    assert not tracker.delete_trip(other.id)
    assert tracker.get_trip(other.id) is None
    assert tracker.settlements(other.id) == []
    assert tracker.balances(other.id) == {}


def test_load_trips(tracker, goa, tracker_file):
    new_tracker = TripTracker(data_file=tracker_file)
    trip = new_tracker.get_trip(goa.id)
    assert trip.name == "Goa Getaway"
    assert len(trip.expenses) == 4
    assert new_tracker.settlements(goa.id) == tracker.settlements(goa.id)
    # ids keep increasing across reloads
    added = new_tracker.add_expense(goa.id, 1, "You")
    assert int(added.id) > max(int(e.id) for e in trip.expenses)


def test_load_camel_case_file(tracker_file, tmp_path):
    path = tmp_path / "mobile.json"
    path.write_text(json.dumps({"trips": [{
        "id": "1",
        "name": "Goa",
        "members": ["A", "B"],
        "expenses": [
            {"id": "e1", "amount": 100, "paidBy": "A", "splitBetween": []},
            {"id": "e2", "amount": 0, "paidBy": "B"},
        ],
    }]}), encoding="utf-8")
    tracker = TripTracker(data_file=str(path))
    assert tracker.balances("1") == pytest.approx({"A": 50, "B": -50})
    assert tracker.stats("1").expense_count == 1


@pytest.mark.parametrize("content", ['{"trips": [ {"id": "1", "name": "Goa"', "{not json", "[1, 2]"])
def test_unreadable_file_is_never_overwritten(tmp_path, content):
    path = tmp_path / "broken.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ValueError):
        TripTracker(data_file=str(path))
    assert path.read_text(encoding="utf-8") == content


def test_clear(tracker, goa, tracker_file):
    tracker.clear()
    assert tracker.trips == []
    assert TripTracker(data_file=tracker_file).trips == []
