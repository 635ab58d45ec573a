import logging
import os
import sys
from typing import Optional
from ..config import settings

FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

def setup_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Set up a logger with the specified name and level."""
    logger = logging.getLogger(name)

    if level is None:
        level = settings.log_level

    logger.setLevel(getattr(logging, level.upper()))

    # Create handlers if they don't exist
    if not logger.handlers:
        formatter = logging.Formatter(FORMAT)

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(getattr(logging, level.upper()))
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        # Mirror to a log file when one is configured
        if settings.log_file:
            log_dir = os.path.dirname(settings.log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(settings.log_file, encoding="utf-8")
            file_handler.setLevel(getattr(logging, level.upper()))
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger
