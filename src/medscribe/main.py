"""Entry point for the transcription worker."""

import signal

from ddtrace import patch_all

from medscribe.dependencies import get_worker
from medscribe.logging import setup_logging

logger = setup_logging()
patch_all()


def main():
    """Starts the transcription worker."""
    logger.info("Starting medscribe transcription worker")
    worker = get_worker()
    signal.signal(signal.SIGTERM, lambda signum, frame: worker.stop())
    worker.start()


if __name__ == "__main__":
    main()
