import logging
import sys
from pythonjsonlogger import jsonlogger


def setup_logging(level: str = "INFO"):
    """
    Configures centralized JSON logging on stdout.
    Called once per process: the API process and every crawl worker process.
    """
    # 1. Get the root logger
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    # 2. Prevent duplicate logs by removing existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # 3. StreamHandler for stdout
    log_handler = logging.StreamHandler(sys.stdout)

    # 4. Define JSON Format
    formatter = jsonlogger.JsonFormatter(
        fmt='%(asctime)s %(levelname)s %(name)s %(message)s',
        datefmt='%Y-%m-%dT%H:%M:%SZ'
    )
    log_handler.setFormatter(formatter)
    root_logger.addHandler(log_handler)

    # 5. Library-Specific Verbosity Management
    # Application logic stays at the requested level
    logging.getLogger("services").setLevel(level.upper())
    logging.getLogger("workers").setLevel(level.upper())

    # Noise reduction (WARNING) for transport and database layers.
    # One request per catalog ID makes httpx very chatty at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    root_logger.info("Logging infrastructure initialized successfully.")
