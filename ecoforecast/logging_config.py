"""
Logging setup shared by the forecasting modules and scripts.
"""

import logging
import os
from datetime import datetime

import config

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_level="INFO", enable_file_logging=False, log_dir=None):
    """
    Configure the root logger once per process.

    Console output is always enabled; file logging writes to
    ``{log_dir}/ecoforecast_YYYYMMDD.log`` when requested.
    """
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)

    # Re-running setup (e.g. from a notebook) must not duplicate handlers
    for handler in list(root.handlers):
        if getattr(handler, "_ecoforecast", False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    console._ecoforecast = True
    root.addHandler(console)

    if enable_file_logging:
        log_dir = log_dir or config.LOG_DIR
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(
            log_dir, f"ecoforecast_{datetime.now().strftime('%Y%m%d')}.log"
        )
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        file_handler._ecoforecast = True
        root.addHandler(file_handler)

    # Third-party chatter
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return root


def get_logger(name):
    return logging.getLogger(name)
