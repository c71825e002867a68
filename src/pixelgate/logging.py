import logging
from pythonjsonlogger import jsonlogger


class RequestIdFilter(logging.Filter):
    """Guarantees every record has a request_id attribute for the formatter."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = None
        return True


def setup_logging(level: str) -> None:
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove default handlers to avoid duplicate logs
    while logger.handlers:
        logger.handlers.pop()

    handler = logging.StreamHandler()
    formatter = jsonlogger.JsonFormatter(
        "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"
    )
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())
    logger.addHandler(handler)
