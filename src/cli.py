import argparse

from loguru import logger

from src.config import get_settings
from src.db.database import Base, create_sync_engine, ensure_sqlite_dir
from src.exceptions import InvalidIntervalError
from src.scheduler.interval import next_run_utc, utcnow
from src.scheduler.runner import scheduler_loop

settings = get_settings()


def init_database():
    """初始化資料庫"""
    import src.models  # noqa: F401

    ensure_sqlite_dir(settings.sync_database_url)
    engine = create_sync_engine()
    Base.metadata.create_all(engine)
    logger.info("Database initialized")


def run_tick():
    """執行一次排程 tick"""
    with scheduler_loop(settings) as loop:
        summary = loop.tick()
    logger.info(f"Tick result: {summary.as_dict()}")


def show_next_run(interval: str):
    try:
        due = next_run_utc(utcnow(), interval, settings.scheduler_timezone)
    except InvalidIntervalError as e:
        logger.error(str(e))
        return
    logger.info(f"Next run for '{interval}': {due.isoformat()} UTC")


def main():
    parser = argparse.ArgumentParser(description="API Pulse CLI")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # init command
    subparsers.add_parser("init", help="Initialize database")

    # tick command
    subparsers.add_parser("tick", help="Run one scheduler tick and exit")

    # next-run command
    next_parser = subparsers.add_parser("next-run", help="Show the next due time for an interval")
    next_parser.add_argument("interval", help="Interval expression (e.g., 5m, 1h, 1d)")

    # serve command
    subparsers.add_parser("serve", help="Start API server")

    args = parser.parse_args()

    if args.command == "init":
        init_database()
    elif args.command == "tick":
        run_tick()
    elif args.command == "next-run":
        show_next_run(args.interval)
    elif args.command == "serve":
        import uvicorn

        uvicorn.run(
            "src.main:app",
            host=settings.api_host,
            port=settings.api_port,
            reload=settings.debug,
        )
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
