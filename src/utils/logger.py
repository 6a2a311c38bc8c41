import logging
import os


def get_logger(run_id: str, logs_dir: str = "logs", console: bool = True) -> logging.Logger:
    os.makedirs(logs_dir, exist_ok=True)

    logger = logging.getLogger(f"campaign_analysis.{run_id}")

    if not logger.handlers:  # prevent duplicate handlers
        logger.setLevel(logging.DEBUG)
        logger.propagate = False

        formatter = logging.Formatter(
            "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

        log_path = os.path.join(logs_dir, f"run_{run_id}.log")
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

        if console:
            stream = logging.StreamHandler()
            stream.setLevel(logging.INFO)
            stream.setFormatter(formatter)
            logger.addHandler(stream)

    return logger


def close_logger(logger: logging.Logger) -> None:
    """Detach and close every handler so log files are released."""
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
