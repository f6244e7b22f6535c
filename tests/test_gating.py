"""
Tests for request gating: rate limiting and disk checks.
"""

from trimmer.services.disk_checker import check_disk_space
from trimmer.services.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestRateLimiter:
    """Tests for RateLimiter."""

    def test_allows_up_to_limit(self):
        limiter = RateLimiter(max_requests=3, window_seconds=60, clock=FakeClock())

        assert [limiter.check("1.2.3.4") for _ in range(4)] == [True, True, True, False]

    def test_keys_are_independent(self):
        limiter = RateLimiter(max_requests=1, window_seconds=60, clock=FakeClock())

        assert limiter.check("a")
        assert limiter.check("b")
        assert not limiter.check("a")

    def test_window_resets(self):
        clock = FakeClock()
        limiter = RateLimiter(max_requests=1, window_seconds=60, clock=clock)

        assert limiter.check("a")
        assert not limiter.check("a")
        clock.now += 61
        assert limiter.check("a")

    def test_prune_drops_expired_windows(self):
        clock = FakeClock()
        limiter = RateLimiter(max_requests=5, window_seconds=60, clock=clock)
        limiter.check("a")
        clock.now += 30
        limiter.check("b")
        clock.now += 31

        assert limiter.prune() == 1
        assert len(limiter) == 1

        limiter.clear()
        assert len(limiter) == 0


class TestDiskChecker:
    def test_measures_existing_parent(self, tmp_path):
        status = check_disk_space(tmp_path / "not" / "created" / "yet", min_free_mb=0)

        assert status.has_space
        assert status.free_mb >= 0

    def test_reports_shortage(self, tmp_path):
        status = check_disk_space(tmp_path, min_free_mb=10**12)
        assert not status.has_space

    def test_unreadable_filesystem_does_not_block(self, tmp_path, mocker):
        mocker.patch("shutil.disk_usage", side_effect=OSError("stat failed"))

        status = check_disk_space(tmp_path, min_free_mb=500)

        assert status.has_space
        assert status.free_mb == -1
