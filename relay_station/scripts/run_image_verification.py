"""
ディール画像検証バッチ実行スクリプト

使い方:
    python -m relay_station.scripts.run_image_verification [--batch-size 20]
"""
import sys
import argparse
import logging
import traceback
from datetime import datetime

from dotenv import load_dotenv
load_dotenv()

from relay_station.services.image_verifier import run_image_verification
from relay_station.services.job_health import VERIFY_JOB_NAME, record_job_result

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def main(argv=None):
    """メイン処理"""
    parser = argparse.ArgumentParser(description="ディール画像検証")
    parser.add_argument("--batch-size", type=int, default=None, help="1回に処理する件数")
    args = parser.parse_args(argv)

    print("=" * 60)
    print("🖼️ ディール画像検証バッチ処理")
    print(f"   実行日時: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 60)

    try:
        result = run_image_verification(batch_size=args.batch_size)
    except Exception as e:
        print(f"\n❌ エラーが発生しました: {str(e)}")
        traceback.print_exc()
        record_job_result(VERIFY_JOB_NAME, False, str(e))
        return 1

    record_job_result(VERIFY_JOB_NAME, True)

    print("\n📊 実行結果:")
    print(f"   {result['message']}")
    print(f"   処理件数: {result['processed']}")
    print(f"   検証済み: {result['verified']}")
    print(f"   再試行: {result['needRetry']}")

    for item in result["results"]:
        symbol = "✓" if item["status"] == "verified" else "✗"
        print(f"   {symbol} {item['id']} ({item['status']})")

    print("\n✅ バッチ処理が完了しました")
    return 0


if __name__ == "__main__":
    exit_code = main()
    sys.exit(exit_code)
