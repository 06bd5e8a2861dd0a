import threading
import pytest

from event_pipeline.core.watermark import CursorResult, TimeWindow, WatermarkTracker, plan_next_cursor

T = 1551839662          # 2019-03-06T02:34:22Z
NOW = 1700000000


class TestWatermarkTracker:
    """Test suite for the latest-timestamp tracker."""

    async def test_only_moves_forward(self):
        tracker = WatermarkTracker()
        assert tracker.value == 0
        assert tracker.update(10)
        assert not tracker.update(5)
        assert not tracker.update(10)
        assert tracker.update(11)
        assert tracker.value == 11

    async def test_concurrent_updates_keep_maximum(self):
        tracker = WatermarkTracker()

        def worker(offset):
            for value in range(offset, 10000, 7):
                tracker.update(value)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(7)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert tracker.value == 9999


class TestPlanNextCursor:
    """Test suite for the next run window."""

    async def test_not_incremental(self):
        assert plan_next_cursor(False, T, TimeWindow(), now=NOW) is None

    async def test_nothing_observed_starts_now(self):
        cursor = plan_next_cursor(True, 0, TimeWindow(start_time="2019-03-01T00:00:00Z"), now=NOW)
        assert cursor.to_report() == {"start_time": NOW}

    async def test_latest_observed_plus_one(self):
        cursor = plan_next_cursor(True, T, TimeWindow(start_time="2019-03-01T00:00:00Z"), now=NOW)
        assert cursor.next_start_time == T + 1
        assert cursor.next_end_time is None

    async def test_end_time_caps_next_start(self):
        window = TimeWindow(start_time=T - 1000, end_time=T - 100)
        cursor = plan_next_cursor(True, T, window, now=NOW)
        assert cursor.next_start_time == T - 99

    async def test_end_time_in_future_does_not_cap(self):
        window = TimeWindow(start_time=T - 1000, end_time=T + 5000)
        cursor = plan_next_cursor(True, T, window, now=NOW)
        assert cursor.next_start_time == T + 1

    async def test_end_time_shifted_by_window_length(self):
        window = TimeWindow(start_time="2019-03-06T00:00:00Z", end_time="2019-03-07T00:00:00Z")
        cursor = plan_next_cursor(True, T, window, now=NOW)
        assert cursor.to_report() == {"start_time": T + 1, "end_time": T + 1 + 86400}

    async def test_end_time_without_start_time_has_zero_width(self):
        window = TimeWindow(end_time=T + 5000)
        cursor = plan_next_cursor(True, T, window, now=NOW)
        assert cursor.next_end_time == cursor.next_start_time

    async def test_unparsable_start_time_has_zero_width(self):
        window = TimeWindow(start_time="yesterday", end_time=T + 5000)
        cursor = plan_next_cursor(True, T, window, now=NOW)
        assert cursor.next_end_time == T + 1

    async def test_epoch_and_iso_inputs_agree(self):
        iso = plan_next_cursor(True, T, TimeWindow(start_time="2019-03-06T00:00:00Z", end_time="2019-03-06T01:00:00Z"))
        epoch = plan_next_cursor(True, T, TimeWindow(start_time=1551830400, end_time=1551834000))
        assert iso == epoch

    async def test_report_without_end_time(self):
        assert CursorResult(next_start_time=5).to_report() == {"start_time": 5}


class TestTimeWindow:
    """Test suite for window parsing."""

    @pytest.mark.parametrize("value", ["2019-03-06T02:34:22Z", "2019-03-06T02:34:22+00:00", str(T), T])
    async def test_supported_formats(self, value):
        assert TimeWindow(start_time=value).start_epoch == T

    async def test_missing_bounds(self):
        window = TimeWindow()
        assert window.start_epoch is None
        assert window.end_epoch is None

    async def test_invalid_value(self):
        with pytest.raises(ValueError):
            TimeWindow(end_time="not a date").end_epoch
