"""
Metrics endpoint for performance monitoring.
"""
from fastapi import APIRouter, Request
from insight_weaver.core.performance import PerformanceMonitor

router = APIRouter()


@router.get("/metrics")
async def get_metrics(request: Request):
    """
    Performance metrics for every tracked operation, plus analysis cache statistics.
    """
    metrics = PerformanceMonitor.get_all_metrics()
    cache = getattr(request.app.state, 'analysis_cache', None)

    return {
        'performance': metrics,
        'cache': {
            'analysis_cache': cache.get_stats() if cache is not None else None
        }
    }
