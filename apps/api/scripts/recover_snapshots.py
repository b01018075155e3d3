import sys
import os
import asyncio
import argparse
import json

# Add parent dir to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import async_session_maker
from services.connectors import get_brightdata_client
from services.snapshots import recover_snapshots


async def main():
    parser = argparse.ArgumentParser(description="Adopt and process Bright Data snapshots missing locally.")
    parser.add_argument("--hours", type=int, default=None, help="Lookback window in hours")
    parser.add_argument("--limit", type=int, default=None, help="Max vendor snapshots to list")
    args = parser.parse_args()

    print("🔍 Listing vendor snapshots...")
    try:
        async with get_brightdata_client() as vendor:
            async with async_session_maker() as db:
                result = await recover_snapshots(db, vendor, lookback_hours=args.hours, limit=args.limit)
    except ValueError as e:
        print(f"❌ {e}")
        sys.exit(1)

    print(f"✅ {result['vendor_snapshots']} snapshot(s) in window, {result['already_tracked']} already tracked")
    print(f"   Reopened: {result['reopened']}  Adopted: {result['adopted']}  Processed: {result['processed']}  Posts: {result['posts']}")
    for detail in result["details"]:
        print(f"   - {json.dumps(detail, default=str)}")


if __name__ == "__main__":
    asyncio.run(main())
