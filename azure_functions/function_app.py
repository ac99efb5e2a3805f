"""
Azure Functions - ディール同期・画像検証タイマートリガー

- ディール同期: 1時間ごと
- 画像検証: 15分ごと
"""
import azure.functions as func
import logging
import json
import sys
import os

# プロジェクトルートをパスに追加
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

app = func.FunctionApp()


@app.timer_trigger(
    schedule="0 0 * * * *",  # 1時間ごとに実行（0分0秒）
    arg_name="myTimer",
    run_on_startup=False
)
def deal_sync_timer(myTimer: func.TimerRequest) -> None:
    """
    ディール同期バッチのタイマートリガー

    スケジュール: 毎時0分
    """
    logging.info('ディール同期バッチ処理を開始します')

    from relay_station.services.job_health import SYNC_JOB_NAME, record_job_result

    try:
        from relay_station.services.deal_sync import run_deal_sync

        result = run_deal_sync()

        logging.info(f"バッチ処理完了: {json.dumps(result, ensure_ascii=False, default=str)}")
        logging.info(f"アップサート: {result['count']}, 価格変動: {result['price_changes']}, 削除: {result['pruned']}")
        record_job_result(SYNC_JOB_NAME, True)

    except Exception as e:
        logging.error(f"バッチ処理でエラーが発生: {str(e)}")
        record_job_result(SYNC_JOB_NAME, False, str(e))
        raise


@app.timer_trigger(
    schedule="0 */15 * * * *",  # 15分ごとに実行
    arg_name="myTimer",
    run_on_startup=False
)
def image_verification_timer(myTimer: func.TimerRequest) -> None:
    """
    ディール画像検証のタイマートリガー

    スケジュール: 15分ごと
    """
    logging.info('画像検証バッチ処理を開始します')

    from relay_station.services.job_health import VERIFY_JOB_NAME, record_job_result

    try:
        from relay_station.services.image_verifier import run_image_verification

        result = run_image_verification()

        logging.info(f"処理件数: {result['processed']}, 検証済み: {result['verified']}, 再試行: {result['needRetry']}")
        record_job_result(VERIFY_JOB_NAME, True)

    except Exception as e:
        logging.error(f"画像検証でエラーが発生: {str(e)}")
        record_job_result(VERIFY_JOB_NAME, False, str(e))
        raise


@app.route(route="health", methods=["GET"])
def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """ヘルスチェックエンドポイント"""
    return func.HttpResponse(
        json.dumps({"status": "healthy", "service": "relay-station-functions"}),
        mimetype="application/json"
    )
