"""
バッチスケジューラーサービス

APSchedulerを使用して定期バッチ処理を実行する
- ディール同期: SYNC_INTERVAL_MINUTES ごと
- 画像検証: VERIFY_INTERVAL_MINUTES ごと

同じプロセス内では同期と画像検証が重ならないよう、ジョブはロックで排他制御する
"""

import logging
import threading
from datetime import datetime
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from relay_station.config import settings
from relay_station.services.job_health import (
    SYNC_JOB_NAME,
    VERIFY_JOB_NAME,
    record_job_result,
)

logger = logging.getLogger(__name__)

# スケジューラーインスタンス（グローバル）
scheduler = BackgroundScheduler()

# ジョブの排他制御用ロック
job_lock = threading.Lock()


def run_deal_sync_job():
    """ディール同期ジョブ"""
    # ロックを取得（他のジョブとの同時実行を防止）
    acquired = job_lock.acquire(blocking=False)
    if not acquired:
        logger.warning("⏳ ディール同期: 他のジョブが実行中のためスキップ")
        return

    try:
        from relay_station.services.deal_sync import run_deal_sync

        logger.info(f"🔄 ディール同期開始: {datetime.now().isoformat()}")
        result = run_deal_sync()
        logger.info(
            f"✅ ディール同期完了: "
            f"件数={result['count']}, 価格変動={result['price_changes']}, "
            f"削除={result['pruned']}, 処理時間={result['duration_seconds']:.2f}秒"
        )
        record_job_result(SYNC_JOB_NAME, True)
    except Exception as e:
        logger.error(f"❌ ディール同期エラー: {str(e)}")
        record_job_result(SYNC_JOB_NAME, False, str(e))
    finally:
        job_lock.release()


def run_image_verification_job():
    """画像検証ジョブ"""
    acquired = job_lock.acquire(blocking=False)
    if not acquired:
        logger.warning("⏳ 画像検証: 他のジョブが実行中のためスキップ")
        return

    try:
        from relay_station.services.image_verifier import run_image_verification

        logger.info(f"🖼️ 画像検証開始: {datetime.now().isoformat()}")
        result = run_image_verification()
        logger.info(
            f"✅ 画像検証完了: "
            f"処理={result['processed']}, 検証済み={result['verified']}, "
            f"再試行={result['needRetry']}"
        )
        record_job_result(VERIFY_JOB_NAME, True)
    except Exception as e:
        logger.error(f"❌ 画像検証エラー: {str(e)}")
        record_job_result(VERIFY_JOB_NAME, False, str(e))
    finally:
        job_lock.release()


def start_scheduler():
    """スケジューラーを開始"""
    if scheduler.running:
        logger.warning("スケジューラーは既に実行中です")
        return

    scheduler.add_job(
        run_deal_sync_job,
        trigger=IntervalTrigger(minutes=settings.SYNC_INTERVAL_MINUTES),
        id="deal_sync",
        name="ディール同期",
        replace_existing=True,
        max_instances=1,  # 同時に1インスタンスのみ
    )

    scheduler.add_job(
        run_image_verification_job,
        trigger=IntervalTrigger(minutes=settings.VERIFY_INTERVAL_MINUTES),
        id="image_verification",
        name="画像検証",
        replace_existing=True,
        max_instances=1,
    )

    scheduler.start()
    logger.info("📅 スケジューラー開始")
    logger.info(f"   - ディール同期: {settings.SYNC_INTERVAL_MINUTES}分ごと")
    logger.info(f"   - 画像検証: {settings.VERIFY_INTERVAL_MINUTES}分ごと")


def stop_scheduler():
    """スケジューラーを停止"""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("📅 スケジューラー停止")


def get_scheduler_status() -> dict:
    """スケジューラーの状態を取得"""
    jobs = []
    if scheduler.running:
        for job in scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
            })

    return {
        "running": scheduler.running,
        "jobs": jobs,
    }
