import logging
import sys
import structlog
from alivecheck.core.config import settings

def configure_logging():
    """
    Routes structlog and stdlib logging through one renderer.

    Every line picks up the request/session ids bound in
    `structlog.contextvars`, so the geocoder, provider and cache events of a
    session can be correlated with its `session_completed` line. Development
    renders to the console, everything else to JSON.
    """
    is_local = settings.ENV.lower() == "development"

    pre_chain = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=pre_chain + [
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=not is_local,
    )

    if is_local:
        render = [structlog.dev.ConsoleRenderer()]
    else:
        render = [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]

    formatter = structlog.stdlib.ProcessorFormatter(
        # stdlib records (uvicorn, f-string loggers) get the same context fields
        foreign_pre_chain=pre_chain,
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta] + render,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.LOG_LEVEL.upper())

    for _log in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
        logger = logging.getLogger(_log)
        logger.handlers = []
        logger.propagate = True
