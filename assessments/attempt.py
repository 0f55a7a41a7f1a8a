"""
Client-side state of one timed test attempt.

``TimedAttempt`` moves through ``not-started -> in-progress -> submitting ->
submitted``. A failed submission drops back to ``in-progress`` without
resetting the clock; the student retries by submitting again. When the
countdown reaches zero the attempt submits itself once with
``autoSubmit=True``.

``AttemptTimer`` drives ``tick()`` once per second on a background timer, keeps
going while a submission is in flight, and stops once the attempt is
submitted, closed or has submitted itself.
"""
import enum
import logging
import threading
import time
import uuid

logger = logging.getLogger(__name__)


class AttemptState(str, enum.Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"


class AttemptError(Exception):
    """Raised for actions that are not allowed in the attempt's current state."""


class TimedAttempt:
    def __init__(self, test, submit, clock=time.time):
        """
        ``test`` is the test definition as returned by the student test
        endpoint (``id`` and ``testConfig`` with ``duration`` and ``questions``).
        ``submit`` receives the submission payload and returns the server
        response; it raises on failure.
        """
        config = test.get('testConfig') or {}
        self.test_id = test['id']
        self.duration_seconds = int(config.get('duration') or 60) * 60
        self.questions = list(config.get('questions') or [])
        self.allow_retake = bool(config.get('allowRetake'))

        self._submit = submit
        self._clock = clock
        self._lock = threading.RLock()
        self._timer = None
        self._auto_submit_fired = False

        self.token = uuid.uuid4().hex
        self.state = AttemptState.NOT_STARTED
        self.answers = {}
        self.flagged = set()
        self.current_index = 0
        self.remaining = None
        self.started_at = None
        self.last_error = None
        self.result = None
        self.closed = False

    # --- lifecycle ---

    def start(self, remaining=None):
        """Begin the attempt. ``remaining`` lets a resumed attempt continue from the server's clock."""
        with self._lock:
            if self.state != AttemptState.NOT_STARTED:
                raise AttemptError(f"Attempt already {self.state.value}")
            self.remaining = self.duration_seconds
            if remaining is not None:
                self.remaining = max(0, min(int(remaining), self.duration_seconds))
            self.started_at = self._clock()
            self.state = AttemptState.IN_PROGRESS
        return self

    def run_timer(self, interval=1.0):
        self._timer = AttemptTimer(self, interval=interval)
        self._timer.start()
        return self._timer

    def close(self):
        """Discard the attempt (navigating away). Late responses are ignored afterwards."""
        with self._lock:
            self.closed = True
        if self._timer is not None:
            self._timer.cancel()

    def accepts(self, token):
        return not self.closed and token == self.token

    # --- clock ---

    def tick(self):
        """
        One second passed. Returns True when this tick triggered the auto-submit.
        The countdown keeps running while a submission is in flight so a failed
        request resumes from the real remaining time.
        """
        with self._lock:
            if self.closed or self.state not in (AttemptState.IN_PROGRESS, AttemptState.SUBMITTING):
                return False
            if self.remaining > 0:
                self.remaining -= 1
        return self._auto_submit_if_expired()

    def catch_up(self):
        """
        Re-align ``remaining`` with wall-clock time after the process was
        suspended; never moves the countdown backwards.
        """
        with self._lock:
            if self.state != AttemptState.IN_PROGRESS:
                return self.remaining
            wall_remaining = max(0, self.duration_seconds - int(self._clock() - self.started_at))
            self.remaining = min(self.remaining, wall_remaining)
        self._auto_submit_if_expired()
        return self.remaining

    def _auto_submit_if_expired(self):
        with self._lock:
            if (self.closed or self.state != AttemptState.IN_PROGRESS
                    or self.remaining > 0 or self._auto_submit_fired):
                return False
            self._auto_submit_fired = True
        logger.info("Time is up for test %s, submitting automatically", self.test_id)
        self.submit(auto=True)
        return True

    @property
    def auto_submitted(self):
        return self._auto_submit_fired

    @property
    def elapsed_seconds(self):
        if self.started_at is None:
            return 0
        return max(0, int(self._clock() - self.started_at))

    # --- navigation ---

    def _require_active(self):
        if self.closed or self.state != AttemptState.IN_PROGRESS:
            raise AttemptError(f"Attempt is {'closed' if self.closed else self.state.value}")

    @property
    def current_question(self):
        return self.questions[self.current_index] if self.questions else None

    def go_to(self, index):
        with self._lock:
            self._require_active()
            if not 0 <= index < len(self.questions):
                raise IndexError(f"Question {index} out of range")
            self.current_index = index
        return self.current_question

    def next(self):
        return self.go_to(min(self.current_index + 1, len(self.questions) - 1))

    def previous(self):
        return self.go_to(max(self.current_index - 1, 0))

    # --- answers & flags ---

    def answer(self, question_id, value):
        """Set the answer for a question; ``None`` or an empty string clears it."""
        with self._lock:
            self._require_active()
            if question_id not in {q['id'] for q in self.questions}:
                raise AttemptError(f"Unknown question {question_id}")
            if value is None or value == '':
                self.answers.pop(question_id, None)
            else:
                self.answers[question_id] = value

    def toggle_flag(self, index=None):
        with self._lock:
            self._require_active()
            index = self.current_index if index is None else index
            if not 0 <= index < len(self.questions):
                raise IndexError(f"Question {index} out of range")
            if index in self.flagged:
                self.flagged.discard(index)
            else:
                self.flagged.add(index)
            return index in self.flagged

    @property
    def answered_count(self):
        return len(self.answers)

    def unanswered_indices(self):
        return [i for i, q in enumerate(self.questions) if q['id'] not in self.answers]

    # --- submission ---

    def payload(self, auto=False):
        return {
            'testId': self.test_id,
            'answers': {str(qid): value for qid, value in self.answers.items()},
            'timeSpent': self.elapsed_seconds,
            'autoSubmit': auto,
        }

    def submit(self, auto=False):
        """
        Send the answers once. Returns the server response, or ``None`` when a
        submission is already in flight, done, or the attempt was closed.
        """
        with self._lock:
            if self.closed or self.state != AttemptState.IN_PROGRESS:
                return None
            self.state = AttemptState.SUBMITTING
            self.last_error = None
            token = self.token
            payload = self.payload(auto=auto)

        try:
            result = self._submit(payload)
        except Exception as e:
            with self._lock:
                self.last_error = e
                if not self.closed:
                    self.state = AttemptState.IN_PROGRESS
            logger.warning("Submission of test %s failed: %s", self.test_id, e)
            raise

        with self._lock:
            if not self.accepts(token):
                logger.info("Discarding submission response for closed attempt on test %s", self.test_id)
                return None
            self.state = AttemptState.SUBMITTED
            self.result = result
        if self._timer is not None:
            self._timer.cancel()
        return result


class AttemptTimer:
    """Calls ``attempt.tick()`` every ``interval`` seconds while the attempt is running."""

    def __init__(self, attempt, interval=1.0):
        self.attempt = attempt
        self.interval = interval
        self._lock = threading.Lock()
        self._timer = None
        self._cancelled = False

    def start(self):
        self._schedule()

    def _schedule(self):
        with self._lock:
            if self._cancelled:
                return
            self._timer = threading.Timer(self.interval, self._run)
            self._timer.daemon = True
            self._timer.start()

    def _run(self):
        try:
            self.attempt.tick()
        except Exception:
            # Error stays on attempt.last_error for the student to retry
            logger.exception("Auto-submit failed for test %s", self.attempt.test_id)
        if self.attempt_running():
            self._schedule()

    def attempt_running(self):
        """Keep ticking through an in-flight submission; stop once submitted, closed or auto-submitted."""
        attempt = self.attempt
        return (not attempt.closed and not attempt.auto_submitted
                and attempt.state in (AttemptState.IN_PROGRESS, AttemptState.SUBMITTING))

    def cancel(self):
        with self._lock:
            self._cancelled = True
            if self._timer is not None:
                self._timer.cancel()

    @property
    def cancelled(self):
        return self._cancelled
