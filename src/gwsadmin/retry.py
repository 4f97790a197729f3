"""
Rate limit retry for mutating calls.
Inserts (users, groups, members) get throttled per customer and the API says
so with a 503.  Those are retried with exponential backoff plus jitter so a
batch of clients hitting the same quota window don't all come back at once.
Nothing else is retried.

Only wrap calls where a 503 means the change was not made.  There is no way
to tell from here whether an ambiguous failure actually created something.
"""
from collections.abc import Callable
from threading import Event
import logging
import random
import time

from .config import validate_max_attempts
from .errors import OperationCancelled, RateLimitExhausted, RequestFailed
from .transport import ApiRequest, HttpOutcome, Success

logger = logging.getLogger(__name__)

RATE_LIMITED_STATUS = 503
BASE_DELAY_MS = 1000
JITTER_MS = 1000

def uniform_jitter(low: float, high: float) -> float:
    """Uniform in [low, high), random.uniform can land on high itself"""
    return low + random.random() * (high - low)

def backoff_delay(attempt: int, jitter: Callable[[float, float], float] = uniform_jitter) -> float:
    """
    Seconds to wait before retry number attempt (0 for the first retry):
    2^attempt * 1000ms plus up to another 1000ms of noise.
    """
    delay_ms = (2 ** attempt) * BASE_DELAY_MS + jitter(0, JITTER_MS)
    return delay_ms / 1000.0

def execute_with_retry(send: Callable[[ApiRequest], HttpOutcome],
                       request: ApiRequest,
                       max_attempts: int,
                       sleep: Callable[[float], None] = time.sleep,
                       jitter: Callable[[float, float], float] = uniform_jitter,
                       cancel: Event|None = None) -> HttpOutcome:
    """
    Send request, retrying up to max_attempts more times while the answer is 503.
    The final outcome is handed back as-is, success or not, so the caller gets
    to decide what a failure means.  See raise_for_outcome().
    max_attempts outside 1-5 is a ConfigurationError before anything is sent.
    """
    validate_max_attempts(max_attempts)
    attempt = 0
    while True:
        outcome = send(request)
        if isinstance(outcome, Success):
            return outcome
        if outcome.status != RATE_LIMITED_STATUS or attempt >= max_attempts:
            return outcome
        delay = backoff_delay(attempt, jitter)
        logger.warning("%s %s rate limited, retry %d of %d in %.2fs",
                       request.method, request.url, attempt + 1, max_attempts, delay)
        if cancel is not None and cancel.is_set():
            raise OperationCancelled("Cancelled while waiting to retry")
        sleep(delay)
        attempt += 1

def raise_for_outcome(outcome: HttpOutcome, attempts: int|None = None) -> Success:
    """
    Turn a final outcome into the error it represents, or hand back the Success.
    A 503 that survived the retry loop is RateLimitExhausted, anything else RequestFailed.
    """
    if isinstance(outcome, Success):
        return outcome
    if outcome.status == RATE_LIMITED_STATUS and attempts is not None:
        raise RateLimitExhausted(outcome.status, outcome.body, attempts)
    raise RequestFailed(outcome.status, outcome.body)
