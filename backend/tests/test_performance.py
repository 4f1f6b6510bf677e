"""
Tests for performance monitoring.
"""
import asyncio
import pytest
from insight_weaver.core.performance import PerformanceMonitor, track_performance


def test_performance_monitor_record():
    """Test recording performance metrics."""
    PerformanceMonitor.clear_metrics()

    PerformanceMonitor.record_metric("run_pipeline", 1.5, {"status": "success"})
    PerformanceMonitor.record_metric("run_pipeline", 2.0)
    PerformanceMonitor.record_metric("run_pipeline", 0.5)

    stats = PerformanceMonitor.get_stats("run_pipeline")

    assert stats is not None
    assert stats["count"] == 3
    assert stats["min"] == 0.5
    assert stats["max"] == 2.0
    assert stats["mean"] == pytest.approx(1.333, rel=0.01)
    assert stats["p50"] == 1.5


def test_performance_decorator_sync():
    """Test performance tracking decorator on sync function."""
    PerformanceMonitor.clear_metrics()

    @track_performance("double")
    def double(x: int) -> int:
        return x * 2

    assert double(5) == 10

    stats = PerformanceMonitor.get_stats("double")
    assert stats is not None
    assert stats["count"] == 1
    assert stats["mean"] >= 0


def test_performance_decorator_records_failures(caplog):
    """Failures are recorded, logged with their traceback and re-raised."""
    PerformanceMonitor.clear_metrics()

    @track_performance("explode")
    def explode():
        raise ValueError("boom")

    with pytest.raises(ValueError):
        explode()

    assert PerformanceMonitor.get_stats("explode")["count"] == 1

    failure = [record for record in caplog.records if record.levelname == "ERROR"][-1]
    assert "explode failed" in failure.getMessage()
    assert failure.exc_info[0] is ValueError


@pytest.mark.asyncio
async def test_performance_decorator_async():
    """Test performance tracking decorator on async function."""
    PerformanceMonitor.clear_metrics()

    @track_performance("async_double")
    async def async_double(x: int, correlation_id=None) -> int:
        await asyncio.sleep(0.01)
        return x * 2

    result = await async_double(5, correlation_id="abc-123")

    assert result == 10

    stats = PerformanceMonitor.get_stats("async_double")
    assert stats is not None
    assert stats["count"] == 1
    assert stats["mean"] > 0


def test_performance_monitor_clear():
    """Test clearing metrics."""
    PerformanceMonitor.record_metric("test", 1.0)
    assert PerformanceMonitor.get_stats("test") is not None
    assert "test" in PerformanceMonitor.get_all_metrics()

    PerformanceMonitor.clear_metrics()
    assert PerformanceMonitor.get_stats("test") is None
