"""
Performance monitoring and metrics collection.
"""
import time
import inspect
import logging
from typing import Dict, Optional, Any
from functools import wraps
from collections import defaultdict
import threading

logger = logging.getLogger(__name__)

# Thread-safe metrics storage
_metrics_lock = threading.RLock()
_metrics: Dict[str, list] = defaultdict(list)

MAX_SAMPLES_PER_METRIC = 1000


class PerformanceMonitor:
    """Monitor and track performance metrics."""

    @staticmethod
    def record_metric(name: str, value: float, metadata: Optional[Dict[str, Any]] = None):
        """
        Record a performance metric.

        Args:
            name: Metric name (e.g., 'clean_dataset', 'run_pipeline')
            value: Metric value (usually duration in seconds, or 1 for counters)
            metadata: Optional metadata (correlation_id, status, etc.)
        """
        with _metrics_lock:
            _metrics[name].append({
                'value': value,
                'timestamp': time.time(),
                'metadata': metadata or {}
            })

            if len(_metrics[name]) > MAX_SAMPLES_PER_METRIC:
                _metrics[name] = _metrics[name][-MAX_SAMPLES_PER_METRIC:]

    @staticmethod
    def get_stats(metric_name: str) -> Optional[Dict[str, float]]:
        """
        Get statistics for a metric.

        Returns:
            Dict with count, min, max, mean and percentiles, or None if no data
        """
        with _metrics_lock:
            if metric_name not in _metrics or not _metrics[metric_name]:
                return None

            values = sorted(m['value'] for m in _metrics[metric_name])
            return {
                'count': len(values),
                'min': values[0],
                'max': values[-1],
                'mean': sum(values) / len(values),
                'p50': values[len(values) // 2],
                'p95': values[int(len(values) * 0.95)],
                'p99': values[int(len(values) * 0.99)],
            }

    @staticmethod
    def get_all_metrics() -> Dict[str, Dict[str, float]]:
        """Get statistics for all metrics."""
        with _metrics_lock:
            return {
                name: PerformanceMonitor.get_stats(name)
                for name in list(_metrics.keys())
            }

    @staticmethod
    def clear_metrics():
        """Clear all metrics (useful for testing)."""
        with _metrics_lock:
            _metrics.clear()


def _correlation_id_from(args, kwargs) -> Optional[str]:
    if kwargs.get('correlation_id'):
        return kwargs['correlation_id']
    if args and hasattr(args[0], 'state'):
        return getattr(args[0].state, 'correlation_id', None)
    if 'request' in kwargs and hasattr(kwargs['request'], 'state'):
        return getattr(kwargs['request'].state, 'correlation_id', None)
    return None


def track_performance(metric_name: str):
    """
    Decorator to track function execution time.

    Usage:
        @track_performance("clean_dataset")
        def clean_dataset(...):
            ...
    """
    def _record(duration: float, correlation_id: Optional[str], error: Optional[Exception] = None):
        if error is None:
            PerformanceMonitor.record_metric(
                metric_name, duration, {'correlation_id': correlation_id, 'status': 'success'}
            )
            logger.debug(
                f"{metric_name} completed in {duration:.3f}s",
                extra={'metric': metric_name, 'duration': duration}
            )
        else:
            PerformanceMonitor.record_metric(
                metric_name,
                duration,
                {'correlation_id': correlation_id, 'status': 'error', 'error': str(error)}
            )
            logger.error(
                f"{metric_name} failed after {duration:.3f}s: {error}",
                extra={'metric': metric_name, 'duration': duration},
                exc_info=error
            )

    def decorator(func):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            start_time = time.time()
            correlation_id = _correlation_id_from(args, kwargs)
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _record(time.time() - start_time, correlation_id, e)
                raise
            _record(time.time() - start_time, correlation_id)
            return result

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            start_time = time.time()
            correlation_id = _correlation_id_from(args, kwargs)
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _record(time.time() - start_time, correlation_id, e)
                raise
            _record(time.time() - start_time, correlation_id)
            return result

        if inspect.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator
