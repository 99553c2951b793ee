"""
Build scheduling for watch mode.

File events only ever set a flag; a build starts when one is wanted, none
is running and the watcher is ready. Events that arrive while a build runs
are folded into a single follow-up build.
"""

import logging
import threading

logger = logging.getLogger('Kiln.Orchestrator')


class BuildOrchestrator:
    def __init__(self, build_fn, launcher=None):
        """
        Args:
            build_fn: Runs one build
            launcher: Called with the function that runs a build; defaults
                to starting it on a background thread
        """
        self.build_fn = build_fn
        self.launcher = launcher or self._launch_thread
        self.needs_build = False
        self.building = False
        self.ready_to_build = False
        self.builds_started = 0
        self._lock = threading.Lock()
        self._thread = None

    def queue_build(self):
        """Record that a build is wanted, e.g. after a file event."""
        with self._lock:
            self.needs_build = True
        self.try_start()

    def mark_ready(self):
        """Record that the initial file scan is done."""
        with self._lock:
            self.ready_to_build = True
        self.try_start()

    def try_start(self) -> bool:
        """Start a build if one is wanted and none is running. Returns True when one started."""
        with self._lock:
            if not (self.needs_build and not self.building and self.ready_to_build):
                return False
            # flipped before the build runs so events during it queue a new one
            self.needs_build = False
            self.building = True
            self.builds_started += 1
        self.launcher(self._run)
        return True

    def _run(self):
        try:
            self.build_fn()
        except Exception as e:
            logger.error(f"Build failed: {e}")
        finally:
            with self._lock:
                self.building = False
            self.try_start()

    def _launch_thread(self, target):
        self._thread = threading.Thread(target=target, name='kiln-build', daemon=True)
        self._thread.start()

    @property
    def idle(self):
        with self._lock:
            return not self.building and not self.needs_build
