from amana.runtime.idempotency import DeliveryGuard


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_duplicate_within_ttl_is_seen() -> None:
    clock = FakeClock()
    guard = DeliveryGuard(ttl_seconds=300, clock=clock)
    assert guard.seen(101) is False
    clock.now += 10
    assert guard.seen("101") is True


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    guard = DeliveryGuard(ttl_seconds=300, clock=clock)
    guard.seen("a")
    clock.now += 301
    assert guard.seen("b") is False
    assert len(guard) == 1
    assert guard.seen("a") is False


def test_capacity_evicts_oldest() -> None:
    guard = DeliveryGuard(ttl_seconds=300, max_entries=3, clock=FakeClock())
    for key in ("1", "2", "3", "4"):
        assert guard.seen(key) is False
    assert len(guard) == 3
    assert guard.seen("1") is False
    assert guard.seen("4") is True
