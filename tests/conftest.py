"""Shared fixtures for coordinator tests."""

import pytest

from duet.coordinator import Delivery, RoomCoordinator


class FakeClock:
    """Settable wall clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def coordinator(clock: FakeClock) -> RoomCoordinator:
    return RoomCoordinator(clock=clock)


def frames_to(deliveries: list[Delivery], connection_id: str) -> list[dict]:
    """Frames addressed to one connection, in delivery order."""
    return [d.frame() for d in deliveries if d.to == connection_id]
