from __future__ import annotations

from datetime import datetime, timezone
import os
from pathlib import Path
from typing import Any

from sqlalchemy import text

from loandesk import __version__ as APP_VERSION
from loandesk.core.settings import settings
from loandesk.db.session import engine
from loandesk.utils.redis_client import get_redis_client


async def _check_db() -> dict[str, str]:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": str(exc)}


async def _check_redis() -> dict[str, str]:
    try:
        redis = get_redis_client()
        await redis.ping()
        return {"status": "ok"}
    except Exception as exc:
        return {"status": "error", "error": str(exc)}


async def _check_storage() -> dict[str, str]:
    provider = settings.storage_provider
    if provider == "gcs":
        if not settings.gcs_bucket:
            return {"status": "error", "provider": provider, "error": "GCS_BUCKET is not configured"}
        return {"status": "ok", "provider": provider}
    upload_dir = Path(settings.local_upload_dir)
    try:
        upload_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        return {"status": "error", "provider": provider, "error": str(exc)}
    if not os.access(upload_dir, os.W_OK):
        return {"status": "error", "provider": provider, "error": f"{upload_dir} is not writable"}
    return {"status": "ok", "provider": provider}


async def _run_checks() -> dict[str, dict[str, Any]]:
    return {
        "api": {"status": "ok", "version": APP_VERSION},
        "database": await _check_db(),
        "redis": await _check_redis(),
        "storage": await _check_storage(),
    }


def _overall_status(checks: dict[str, dict[str, Any]]) -> tuple[str, bool]:
    ready = all(check.get("status") == "ok" for check in checks.values())
    return ("ok" if ready else "degraded", ready)


async def live_payload() -> dict[str, str]:
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


async def ready_payload() -> dict[str, Any]:
    checks = await _run_checks()
    overall, ready = _overall_status(checks)
    return {
        "status": overall,
        "ready": ready,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }


async def status_summary_payload() -> dict[str, Any]:
    payload = await ready_payload()
    payload["version"] = APP_VERSION
    return payload


async def health_payload() -> dict[str, Any]:
    payload = await ready_payload()
    return {"status": payload["status"], "checks": payload["checks"]}
