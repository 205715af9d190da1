import logging
import time
from concurrent_log_handler import ConcurrentRotatingFileHandler
from pathlib import Path
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.config import settings

class LogConfig:
    """File + console logging for the "app" logger tree"""

    def __init__(self, log_dir: str = settings.log_dir, log_file: str = "hondana.log"):
        self.log_dir = Path(log_dir)
        self.log_file = log_file
        self.logger = None

    def setup_logging(self, log_level: str = "INFO"):

        """Initialize logging with size-based rotation"""
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger("app")
        self.logger.setLevel(getattr(logging, log_level.upper()))

        # Remove existing handlers to avoid duplicates
        self.logger.handlers.clear()

        # - Rotates when file hits 10MB
        # - Keeps 10 backups
        # - Uses file locking so several workers can share the file
        file_handler = ConcurrentRotatingFileHandler(
            filename=self.log_dir / self.log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=10,
            encoding="utf-8",
            use_gzip=True
        )

        console_handler = logging.StreamHandler()

        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        file_handler.setFormatter(formatter)
        console_handler.setFormatter(formatter)

        self.logger.addHandler(file_handler)
        self.logger.addHandler(console_handler)

        return self.logger


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "Unknown"


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One line per request: method, path, status, client IP, duration."""

    def __init__(self, app):
        super().__init__(app)
        self.logger = logging.getLogger("app.requests")

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            self.logger.info(
                f"{request.method} {request.url.path} {status_code} "
                f"{get_client_ip(request)} {duration_ms:.2f}ms"
            )


# Global log config instance
log_config = LogConfig()
