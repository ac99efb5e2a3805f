"""
定期ジョブの稼働状況記録
"""
import uuid
import logging
from typing import Optional

from sqlalchemy.orm import Session

from relay_station.database import SessionLocal, utcnow
from relay_station.models.cron_job_health import CronJobHealth

logger = logging.getLogger(__name__)

STATUS_HEALTHY = "healthy"
STATUS_DEGRADED = "degraded"
STATUS_FAILING = "failing"

SYNC_JOB_NAME = "sync-deals"
VERIFY_JOB_NAME = "verify-deal-images"

# 連続失敗がこの回数に達したら failing
FAILING_THRESHOLD = 3


def record_job_run(
    db: Session, job_name: str, success: bool, error: Optional[str] = None
) -> CronJobHealth:
    """ジョブの実行結果を記録してコミット"""
    now = utcnow()
    health = db.query(CronJobHealth).filter(CronJobHealth.job_name == job_name).first()
    if health is None:
        health = CronJobHealth(
            id=str(uuid.uuid4()),
            job_name=job_name,
            status=STATUS_HEALTHY,
            total_runs=0,
            successful_runs=0,
            failed_runs=0,
            consecutive_failures=0,
        )
        db.add(health)

    health.total_runs += 1
    if success:
        health.successful_runs += 1
        health.consecutive_failures = 0
        health.last_success_at = now
        health.last_error = None
    else:
        health.failed_runs += 1
        health.consecutive_failures += 1
        health.last_failure_at = now
        health.last_error = (error or "")[:1000] or None

    health.uptime_percentage = round(health.successful_runs / health.total_runs * 100, 2)
    if health.consecutive_failures >= FAILING_THRESHOLD:
        health.status = STATUS_FAILING
    elif health.consecutive_failures > 0:
        health.status = STATUS_DEGRADED
    else:
        health.status = STATUS_HEALTHY

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        f"ジョブ稼働状況を記録: {job_name} status={health.status} "
        f"uptime={health.uptime_percentage}%"
    )
    return health


def record_job_result(job_name: str, success: bool, error: Optional[str] = None) -> None:
    """新しいセッションで実行結果を記録（記録の失敗はジョブの結果に影響させない）"""
    db = SessionLocal()
    try:
        record_job_run(db, job_name, success, error)
    except Exception as e:
        logger.error(f"ジョブ稼働状況の記録に失敗: {job_name} - {str(e)}")
    finally:
        db.close()
