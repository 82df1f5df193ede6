#!/usr/bin/env python3
"""
Progress Tracker for the analysis pipeline

One tracker per analysis request. Steps are kept in memory, logged as they
change, and pushed to any subscribed observers. Safe to share between the
worker threads of a single request.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, List

from data_models import ProgressStep

logger = logging.getLogger(__name__)

RUNNING = "running"
COMPLETE = "complete"
ERROR = "error"


class ProgressTracker:
    """Collects step-level progress for one analysis run"""

    def __init__(self, total_steps: int = 1):
        self.total_steps = max(total_steps, 1)
        self._steps: List[ProgressStep] = []
        self._observers: List[Callable[[ProgressStep], None]] = []
        self._lock = threading.Lock()

    def subscribe(self, observer: Callable[[ProgressStep], None]):
        """Register an observer; it immediately receives the steps recorded so far"""
        with self._lock:
            self._observers.append(observer)
            existing = list(self._steps)
        for step in existing:
            observer(step)

    def set_total_steps(self, total_steps: int):
        with self._lock:
            self.total_steps = max(total_steps, 1)

    def log_progress(self, step_number: int, title: str, description: str, status: str = RUNNING) -> ProgressStep:
        with self._lock:
            total = self.total_steps
            step = ProgressStep(
                step_number=step_number,
                total_steps=total,
                title=title,
                description=description,
                status=status,
                percentage=round(step_number / total * 100),
                timestamp=datetime.now().isoformat(timespec='seconds'),
            )
            self._steps.append(step)
            observers = list(self._observers)

        message = f"[{step_number}/{total}] {step.percentage}% - {title}: {description} [{status.upper()}]"
        if status == ERROR:
            logger.warning(message)
        else:
            logger.info(message)

        for observer in observers:
            observer(step)
        return step

    def start(self, step_number: int, title: str, description: str = "") -> ProgressStep:
        return self.log_progress(step_number, title, description, RUNNING)

    def complete(self, step_number: int, title: str, description: str = "") -> ProgressStep:
        return self.log_progress(step_number, title, description, COMPLETE)

    def error(self, step_number: int, title: str, description: str) -> ProgressStep:
        return self.log_progress(step_number, title, description, ERROR)

    def get_steps(self) -> List[ProgressStep]:
        with self._lock:
            return list(self._steps)
