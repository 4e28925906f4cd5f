import pytest

from locker_helpers import LockerHarness, new_identity


@pytest.fixture
def harness():
    return LockerHarness()


@pytest.fixture
def owner():
    return new_identity()


@pytest.fixture
def other_owner():
    return new_identity()
