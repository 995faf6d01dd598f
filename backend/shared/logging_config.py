import logging
import sys

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'

# Third-party loggers that flood INFO with connection chatter
NOISY_LOGGERS = ("aiokafka", "kafka", "sqlalchemy.engine", "uvicorn.access")


def setup_logging(service_name: str, level: str = "INFO", fmt: str = LOG_FORMAT) -> logging.Logger:
    """Standardized logging setup for the ESG services"""

    formatter = logging.Formatter(fmt=fmt, datefmt='%Y-%m-%d %H:%M:%S')

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Repeated setup (reloads, test imports) must not stack handlers
    has_console = any(
        getattr(handler, "_esg_console", False) for handler in root_logger.handlers
    )
    if not has_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        console_handler._esg_console = True
        root_logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return logging.getLogger(service_name)
