"""Monitoring and health check service."""

import time
from typing import Any, Dict, List

import psutil
from sqlalchemy import func, select

from teachmatch.models.database import SessionFactory, get_db_session
from teachmatch.models.teaching_request import RequestStatus, TeachingRequest
from teachmatch.utils.clock import utc_now
from teachmatch.utils.logging import get_logger

logger = get_logger(__name__)

BACKLOG_WARNING = 50


class MonitoringService:
    """Service for system monitoring and health checks."""

    def __init__(self, session_factory: SessionFactory = get_db_session):
        self.session_factory = session_factory

    async def get_system_health(self) -> Dict[str, Any]:
        """Get comprehensive system health status."""
        health_status: Dict[str, Any] = {
            "overall_status": "healthy",
            "timestamp": utc_now().isoformat(),
            "components": {},
            "metrics": {},
            "alerts": []
        }

        health_status["components"]["database"] = await self._check_database_health()
        health_status["metrics"] = self._get_system_metrics()

        component_statuses = [comp["status"] for comp in health_status["components"].values()]
        if "critical" in component_statuses:
            health_status["overall_status"] = "critical"
        elif "degraded" in component_statuses:
            health_status["overall_status"] = "degraded"

        health_status["alerts"] = self._generate_alerts(health_status)
        return health_status

    async def _check_database_health(self) -> Dict[str, Any]:
        """Check connectivity and report the request backlog."""
        started = time.monotonic()
        now = utc_now()
        try:
            async with self.session_factory() as session:
                pending = await session.scalar(
                    select(func.count(TeachingRequest.id))
                    .where(TeachingRequest.status == RequestStatus.PENDING)
                )
                lapsed = await session.scalar(
                    select(func.count(TeachingRequest.id))
                    .where(
                        TeachingRequest.status == RequestStatus.PENDING,
                        TeachingRequest.timeout_at.is_not(None),
                        TeachingRequest.timeout_at <= now
                    )
                )
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "critical",
                "error": str(e),
                "last_check": now.isoformat()
            }

        lapsed = lapsed or 0
        return {
            "status": "degraded" if lapsed > BACKLOG_WARNING else "healthy",
            "response_time_ms": round((time.monotonic() - started) * 1000, 2),
            "pending_requests": pending or 0,
            "sweep_backlog": lapsed,
            "last_check": now.isoformat()
        }

    def _get_system_metrics(self) -> Dict[str, Any]:
        """Get process and host resource metrics."""
        try:
            memory = psutil.virtual_memory()
            process = psutil.Process()
            return {
                "cpu": {
                    "usage_percent": round(psutil.cpu_percent(interval=None), 2),
                    "core_count": psutil.cpu_count()
                },
                "memory": {
                    "usage_percent": round(memory.percent, 2),
                    "process_rss_mb": round(process.memory_info().rss / (1024 ** 2), 2)
                }
            }
        except psutil.Error as e:
            logger.error("Error getting system metrics", error=str(e))
            return {"error": str(e)}

    def _generate_alerts(self, health_status: Dict[str, Any]) -> List[Dict[str, Any]]:
        alerts = []

        for component_name, component_health in health_status["components"].items():
            if component_health["status"] == "critical":
                alerts.append({
                    "level": "critical",
                    "component": component_name,
                    "message": f"{component_name.title()} is down",
                    "details": component_health.get("error", "Unknown error")
                })
            elif component_health["status"] == "degraded":
                alerts.append({
                    "level": "warning",
                    "component": component_name,
                    "message": f"{component_name.title()} is degraded",
                    "details": f"{component_health.get('sweep_backlog', 0)} lapsed requests awaiting a sweep"
                })

        memory_usage = health_status.get("metrics", {}).get("memory", {}).get("usage_percent", 0)
        if memory_usage > 90:
            alerts.append({
                "level": "critical",
                "component": "system",
                "message": f"High memory usage: {memory_usage}%",
                "details": "Memory usage is critically high"
            })

        return alerts
