import logging
import sys

from dairyledger.db import close_connection, initialize_db
from dairyledger.logging import configure_logging, reconfigure

logger = logging.getLogger(__name__)


def run_scheduler() -> None:
    from dairyledger.cli.app import build_services

    _, _, scheduler = build_services()
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        logger.info("Scheduler stopped")
    finally:
        close_connection()


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    configure_logging()
    initialize_db()
    reconfigure()

    if args and args[0] == "scheduler":
        run_scheduler()
        return

    from dairyledger.cli.app import main_menu

    main_menu()


if __name__ == "__main__":
    main()
