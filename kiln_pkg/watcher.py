"""
Watch mode: rebuild the site when content, templates or static files change.
"""

import os
import time
import logging

from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .orchestrator import BuildOrchestrator

logger = logging.getLogger('Kiln.Watcher')


class ContentChangeHandler(FileSystemEventHandler):
    """Turns file events into build requests, ignoring the build's own output."""

    def __init__(self, orchestrator, ignore_dirs=None):
        self.orchestrator = orchestrator
        self.ignore_dirs = [os.path.abspath(d) for d in ignore_dirs or []]

    def _is_ignored(self, path):
        path = os.path.abspath(path)
        return any(path == d or path.startswith(d + os.sep) for d in self.ignore_dirs)

    def _queue(self, event):
        if event.is_directory or self._is_ignored(event.src_path):
            return
        logger.info(f"Change detected: {event.src_path}")
        self.orchestrator.queue_build()

    def on_modified(self, event):
        self._queue(event)

    def on_created(self, event):
        self._queue(event)

    def on_deleted(self, event):
        self._queue(event)

    def on_moved(self, event):
        self._queue(event)


def watch(builder, paths, stop_event=None, poll_interval=1.0):
    """
    Build once, then rebuild on every change under paths until interrupted.

    Args:
        builder: A SiteBuilder
        paths: Directories to watch; missing ones are skipped
        stop_event: Optional threading.Event that ends the watch when set

    Returns:
        The BuildOrchestrator used
    """
    orchestrator = BuildOrchestrator(builder.build)
    handler = ContentChangeHandler(orchestrator, ignore_dirs=[builder.build_dir, builder.public_dir])
    observer = Observer()
    for path in paths:
        if path and os.path.isdir(path):
            observer.schedule(handler, path, recursive=True)
            logger.debug(f"Watching: {path}")

    observer.start()
    orchestrator.queue_build()
    orchestrator.mark_ready()
    logger.info("Watching for changes. Press Ctrl+C to stop.")

    try:
        while not (stop_event and stop_event.is_set()):
            time.sleep(poll_interval)
    except KeyboardInterrupt:
        logger.info("Watching for changes stopped.")
    finally:
        observer.stop()
        observer.join()
    return orchestrator
