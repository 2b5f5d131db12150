import logging
import re
import sys
import time
import uuid

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

_LOG_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "{extra[request_id]} {extra[session_id]} | <level>{message}</level>"
)

# The Gemini SDK logs every HTTP round trip; Pillow logs every plugin it probes.
_NOISY_LOGGERS = ("httpcore", "httpx", "google_genai", "PIL")

_SESSION_PATH = re.compile(r"^/api/sessions/([^/]+)")


class _InterceptHandler(logging.Handler):
    """Forward stdlib records (agents, SDKs) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        level: str | int
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(log_level: str = "DEBUG") -> None:
    """Make loguru the only log sink.

    Agent modules log through stdlib ``logging`` and are forwarded here by
    _InterceptHandler; the Gemini SDK and its HTTP stack are held at WARNING.
    """
    logger.remove()
    logger.configure(extra={"request_id": "-", "session_id": "-"})
    logger.add(sys.stderr, format=_LOG_FORMAT, level=log_level.upper(), colorize=True)

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def session_id_from_path(path: str) -> str:
    match = _SESSION_PATH.match(path)
    return match.group(1) if match else "-"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag every log line of a request with a short request ID and its session.

    Generation requests make one image-model call per frame, so the duration
    logged on completion is the number to watch. For the SSE endpoint it is
    time-to-first-byte only.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        label = f"{request.method} {request.url.path}"
        context = {"request_id": uuid.uuid4().hex[:8], "session_id": session_id_from_path(request.url.path)}

        with logger.contextualize(**context):
            logger.info("{label}", label=label)
            start = time.perf_counter()
            try:
                response = await call_next(request)
            except Exception:
                logger.exception("{label} -> UNHANDLED ({ms:.0f}ms)", label=label, ms=_elapsed_ms(start))
                raise
            log = logger.warning if response.status_code >= 500 else logger.info
            log("{label} -> {status} ({ms:.0f}ms)", label=label, status=response.status_code, ms=_elapsed_ms(start))

        return response


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000
