"""
Logging setup and build reporting.
"""

import os
import time
import logging
import threading
from datetime import datetime


class InfoFilter(logging.Filter):
    """Filter to allow only selected INFO messages to be shown in the console."""
    allowed_messages = [
        "Build completed in",
        "Nodes published:",
        "Nodes current:",
        "Nodes failed:",
        "Images processed:",
        "Generating sitemap",
        "Generating web manifest",
        "Watching for changes",
        "Change detected",
    ]

    def filter(self, record):
        if record.levelno >= logging.WARNING:
            return True
        return any(msg in record.getMessage() for msg in self.allowed_messages)


def setup_logging(verbose=False, log_dir=None):
    """
    Set up the 'Kiln' logger: a filtered console handler and a file handler for all logs.

    Args:
        verbose: Show every INFO message on the console
        log_dir: Directory of the log files; defaults to ./logs

    Returns:
        The configured logger
    """
    logger = logging.getLogger('Kiln')
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    if not logger.handlers:
        # Console handler with filter
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        if not verbose:
            console_handler.addFilter(InfoFilter())
        console_handler.setFormatter(logging.Formatter('%(message)s'))
        logger.addHandler(console_handler)

        # File handler for all logs
        logs_dir = log_dir or os.path.join(os.getcwd(), 'logs')
        os.makedirs(logs_dir, exist_ok=True)
        log_filename = datetime.now().strftime('kiln_%Y-%m-%d_%H-%M-%S.log')
        file_handler = logging.FileHandler(os.path.join(logs_dir, log_filename))
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))
        logger.addHandler(file_handler)

    return logger


class BuildReport:
    """Counts what one build did and logs the summary at the end."""

    def __init__(self):
        self.started = time.time()
        self.finished = None
        self.published = 0
        # publishable nodes whose page is up to date after the build, published now or earlier
        self.current = 0
        self.failed = []
        self.images_processed = 0
        self.files_copied = 0
        self.phase_times = {}
        self.reconciled = {}
        self._lock = threading.Lock()

    def fail(self, path, error):
        with self._lock:
            self.failed.append((str(path), str(error)))

    def add_published(self, count=1):
        with self._lock:
            self.published += count

    def time_phase(self, name):
        return _PhaseTimer(self, name)

    @property
    def elapsed(self):
        return (self.finished or time.time()) - self.started

    def finish(self, logger):
        self.finished = time.time()
        for name, seconds in self.phase_times.items():
            logger.debug(f"Phase {name} took {seconds:.4f} seconds")
        logger.info(f"Build completed in {self.elapsed:.6f} seconds.")
        logger.info(f"Nodes published: {self.published}")
        logger.info(f"Nodes current: {self.current}")
        logger.info(f"Nodes failed: {len(self.failed)}")
        logger.info(f"Images processed: {self.images_processed}")


class _PhaseTimer:
    def __init__(self, report, name):
        self.report = report
        self.name = name

    def __enter__(self):
        self.start = time.time()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.report.phase_times[self.name] = time.time() - self.start
        return False
