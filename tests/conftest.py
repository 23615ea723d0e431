import pytest
from src.models import Expense, Trip


@pytest.fixture
def goa_trip():
    """Four members, everyone pays once, every expense split with the whole trip."""
    return Trip(
        id="1",
        name="Goa Getaway",
        members=["You", "Rahul", "Neha", "Amit"],
        expenses=[
            Expense(id="1", title="Lunch", amount=4000, paid_by="Amit", category="Food"),
            Expense(id="2", title="Villa", amount=20000, paid_by="You", category="Stay"),
            Expense(id="3", title="Scooter", amount=2000, paid_by="Rahul", category="Travel"),
            Expense(id="4", title="Drinks", amount=4000, paid_by="Neha", category="Food"),
        ],
    )


@pytest.fixture
def tracker_file(tmp_path):
    return str(tmp_path / "data" / "trips.json")
