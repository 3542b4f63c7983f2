from datetime import date

import pytest
from fastapi.testclient import TestClient

from main import app, get_store
from schemas import CustomerCreate
from storage import MemStorage


@pytest.fixture
def store():
    return MemStorage()


@pytest.fixture
def client(store):
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_customer():
    def _make(**overrides):
        data = {
            "name": "Lakshmi",
            "area_name": "Gandhi Nagar",
            "phone_number": "9876543210",
            "amount_given": 5000,
            "interest_amount": 500,
            "document_charge": 100,
            "start_date": date(2024, 1, 1),
            "collection_line": "monday-morning",
        }
        data.update(overrides)
        return CustomerCreate(**data)
    return _make
