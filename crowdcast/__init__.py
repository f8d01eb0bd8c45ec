"""
CrowdCast — crowd density aggregation, surge forecasting and alerting.

Pipeline:
    crowd points → GridAggregator → ForecastingAdapter → AlertManager → channels

Components are constructor-injected and share one asyncio event loop;
periodic work is driven by APScheduler (see crowdcast.services.scheduler).
"""

__version__ = "1.0.0"
