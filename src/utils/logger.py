import os
import sys

from loguru import logger

LOG_DIR = "logs"

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} - {message}"
)


def setup_logger(*, json_logs: bool = False, level: str = "INFO", log_dir: str = LOG_DIR) -> None:
    """Configure loguru for the mint monitor.

    Console level comes from LOG_LEVEL (default INFO). ``mint_monitor_*.log``
    keeps everything at DEBUG so a run can be replayed page by page;
    ``mint_monitor_warnings.log`` keeps only upstream give-ups and failed runs.
    """
    console_level = os.getenv("LOG_LEVEL", level).upper()
    logger.remove()

    if json_logs:
        logger.add(sys.stdout, serialize=True, level=console_level)
    else:
        logger.add(
            sys.stdout,
            format=(
                "<green>{time:HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<level>{message}</level>"
            ),
            level=console_level,
            colorize=True,
        )

    logger.add(
        f"{log_dir}/mint_monitor_{{time:YYYY-MM-DD}}.log",
        format=FILE_FORMAT,
        rotation="20 MB",
        retention="7 days",
        compression="gz",
        level="DEBUG",
        serialize=json_logs,
    )
    logger.add(
        f"{log_dir}/mint_monitor_warnings.log",
        format=FILE_FORMAT,
        rotation="5 MB",
        retention="30 days",
        level="WARNING",
        serialize=json_logs,
    )
