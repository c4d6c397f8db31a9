import argparse
import asyncio

from loguru import logger

from src.config import get_settings
from src.db.database import init_db

settings = get_settings()

SCANS = ["maintenance", "warranty", "license"]


def init_database():
    """初始化資料庫"""
    asyncio.run(init_db())
    logger.info("Database initialized")


async def _run_scans(names):
    from src.scheduler.runner import create_notification_scheduler

    scheduler = create_notification_scheduler()
    for name in names:
        logger.info(f"Running {name} scan")
        result = await scheduler.run_scan(name)
        logger.info(f"Result: {result}")


def run_scan(scan: str = None):
    """立即執行到期掃描"""
    if scan and scan not in SCANS:
        logger.error(f"Unknown scan: {scan}. Available: {SCANS}")
        return
    asyncio.run(_run_scans([scan] if scan else SCANS))


def main():
    parser = argparse.ArgumentParser(description="Asset Inventory Notification CLI")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # init command
    subparsers.add_parser("init", help="Initialize database")

    # scan command
    scan_parser = subparsers.add_parser("scan", help="Run expiry scans now")
    scan_parser.add_argument("--scan", "-s", choices=SCANS, help="Run only this scan")

    # serve command
    subparsers.add_parser("serve", help="Start API server with the scheduler")

    # seed command
    subparsers.add_parser("seed", help="Seed demo users and assets")

    args = parser.parse_args()

    if args.command == "init":
        init_database()
    elif args.command == "scan":
        run_scan(args.scan)
    elif args.command == "serve":
        import uvicorn

        uvicorn.run(
            "src.main:app",
            host=settings.api_host,
            port=settings.api_port,
            reload=settings.debug,
        )
    elif args.command == "seed":
        from src.db.seed import seed_demo_data

        asyncio.run(seed_demo_data())
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
