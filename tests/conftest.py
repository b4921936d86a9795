"""Shared fixtures: a fresh in-memory backend and the services over it."""

import asyncio
from uuid import uuid4

import pytest

from fintrack.config import Settings
from fintrack.orchestrator import FinanceApp
from fintrack.services.storage import create_memory_storage


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def other_user_id():
    return uuid4()


@pytest.fixture
def storage():
    return create_memory_storage()


@pytest.fixture
def app(storage):
    """Every service over the in-memory storage, system categories seeded."""
    finance_app = FinanceApp(storage, Settings())
    asyncio.run(finance_app.initialize())
    return finance_app
