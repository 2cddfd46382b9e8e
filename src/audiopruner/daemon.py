"""Daemon runner for AudioPruner."""

import sys

import uvicorn

from audiopruner.api.app import create_app
from audiopruner.config import Config
from audiopruner.core.tools import resolve_ffmpeg, resolve_ffprobe
from audiopruner.errors import ToolNotFound
from audiopruner.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


class DaemonRunner:
    """Runs the HTTP API under uvicorn.

    uvicorn installs its own SIGINT/SIGTERM handlers and drains in-flight
    requests, so an interrupted remux still releases its path lock and
    kills its ffmpeg child.
    """

    def __init__(self, config: Config):
        """Initialize daemon runner.

        Args:
            config: Application configuration
        """
        self.config = config
        self.app = create_app(config)

    def check_tools(self) -> bool:
        """Log where ffmpeg/ffprobe were found; False if they were not."""
        try:
            ffmpeg = resolve_ffmpeg(self.config.tools.ffmpeg_path)
            ffprobe = resolve_ffprobe(self.config.tools.ffmpeg_path)
        except ToolNotFound as e:
            logger.warning("Media tools not available, requests will fail", error=str(e))
            return False

        logger.info("Media tools resolved", ffmpeg=str(ffmpeg), ffprobe=str(ffprobe))
        return True

    def run(self):
        """Run the daemon until interrupted."""
        self.check_tools()

        logger.info(
            "Starting daemon",
            host=self.config.api.host,
            port=self.config.api.port,
        )

        server = uvicorn.Server(
            uvicorn.Config(
                self.app,
                host=self.config.api.host,
                port=self.config.api.port,
                log_level=self.config.logging.level,
                access_log=False,  # RequestLoggingMiddleware logs API calls
            )
        )

        try:
            server.run()
        except Exception as e:
            logger.exception("Daemon error", error=str(e))
            sys.exit(1)
        finally:
            logger.info("Daemon stopped")


def start_daemon(config: Config):
    """Start the daemon.

    Args:
        config: Application configuration
    """
    setup_logging(config.logging)

    DaemonRunner(config).run()
