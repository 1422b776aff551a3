# smartbroker/core/logging_config.py
"""Loguru para toda a aplicação, com Trace ID por requisição.

O Trace ID vem do header ``X-Request-ID`` (ou é gerado), acompanha os logs
da requisição e das tarefas em segundo plano agendadas por ela, e volta ao
cliente em ``X-Trace-ID``.
"""

import contextvars
import logging
import sys
import time
import uuid

from loguru import logger

from smartbroker.core.config import settings

UNSET_TRACE_ID = "unset"
trace_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("trace_id", default=UNSET_TRACE_ID)

# Requisições de monitoramento só aparecem em DEBUG
QUIET_PATHS = {f"{settings.API_V1_STR}/healthcheck"}

NOISY_LOGGERS = ("httpx", "httpcore", "pymongo", "openai")

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}Z</green> | "
    "<level>{level: <8}</level> | "
    "<magenta>TID:{extra[trace_id]: >12.12}</magenta> | "
    "<cyan>{name}:{function}:{line}</cyan> | "
    "<level>{message}</level>"
)

logger.configure(extra={"trace_id": UNSET_TRACE_ID})


def new_trace_id(prefix: str = "req") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class InterceptHandler(logging.Handler):
    """Encaminha o logging padrão (uvicorn, motor, httpx, openai) para o Loguru."""

    def emit(self, record: logging.LogRecord):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).bind(
            trace_id=trace_id_var.get()
        ).log(level, record.getMessage())


def setup_logging():
    logger.remove()
    log_level = settings.LOG_LEVEL.upper()
    logger.add(
        sys.stderr,
        level=log_level,
        format=CONSOLE_FORMAT,
        enqueue=True,
        backtrace=True,
        diagnose=log_level == "DEBUG",
        colorize=True,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.success(f"Loguru configured for {settings.PROJECT_NAME}. Console log level: {log_level}")


async def add_trace_id_middleware(request, call_next):
    trace_id = request.headers.get("X-Request-ID") or new_trace_id()
    token = trace_id_var.set(trace_id)
    path = request.url.path
    level = "DEBUG" if path in QUIET_PATHS else "INFO"
    started = time.perf_counter()

    with logger.contextualize(trace_id=trace_id):
        client_host = request.client.host if request.client else "unknown_host"
        logger.log(level, f"--> {request.method} {path} from {client_host}")
        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.exception(f"Unhandled exception during {request.method} {path} after {elapsed_ms:.1f}ms")
            raise
        finally:
            trace_id_var.reset(token)

        response.headers["X-Trace-ID"] = trace_id
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.log(level, f"<-- {request.method} {path} {response.status_code} in {elapsed_ms:.1f}ms")
        return response
