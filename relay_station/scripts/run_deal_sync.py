"""
ディール同期バッチ実行スクリプト

使い方:
    python -m relay_station.scripts.run_deal_sync

cronで定期実行する場合:
    0 * * * * cd /path/to/project && python -m relay_station.scripts.run_deal_sync >> /var/log/deal_sync.log 2>&1
"""
import sys
import logging
import traceback
from datetime import datetime

from dotenv import load_dotenv
load_dotenv()

from relay_station.services.deal_sync import run_deal_sync
from relay_station.services.job_health import SYNC_JOB_NAME, record_job_result

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def main():
    """メイン処理"""
    print("=" * 60)
    print("🚀 ディール同期バッチ処理")
    print(f"   実行日時: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 60)

    try:
        result = run_deal_sync()
    except Exception as e:
        print(f"\n❌ エラーが発生しました: {str(e)}")
        traceback.print_exc()
        record_job_result(SYNC_JOB_NAME, False, str(e))
        return 1

    record_job_result(SYNC_JOB_NAME, True)

    print("\n📊 実行結果:")
    print(f"   ステータス: {result['status']}")
    print(f"   取得件数: {result['fetched']}")
    print(f"   スキップ: {result['skipped']}")
    print(f"   重複: {result['duplicates']}")
    print(f"   アップサート: {result['count']}")
    print(f"   価格変動: {result['price_changes']}件")
    if result["history_errors"]:
        print(f"   価格履歴エラー: {result['history_errors']}件")
    print(f"   削除: {result['pruned']}件")
    print(f"   処理時間: {result['duration_seconds']:.2f}秒")

    print("\n✅ バッチ処理が完了しました")
    return 0


if __name__ == "__main__":
    exit_code = main()
    sys.exit(exit_code)
