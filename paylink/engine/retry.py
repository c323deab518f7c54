"""
Retry budget for webhook jobs.

A failed job is re-pushed with ``retries + 1`` after RETRY_DELAY until it
has been retried MAX_RETRIES times; the next failure moves it to the
dead-letter list. A job that fails N times is therefore enqueued
``min(N, MAX_RETRIES) + 1`` times and dead-lettered iff N > MAX_RETRIES.
"""

from dataclasses import dataclass

from paylink.queue.enqueuer import WebhookJob

MAX_RETRIES = 3
RETRY_DELAY = 5.0  # seconds


@dataclass
class RetryDecision:
    job: WebhookJob
    dead_letter: bool


def next_attempt(job: WebhookJob, max_retries: int = MAX_RETRIES) -> RetryDecision:
    """Decide what happens to a job whose handler just failed."""
    if job.retries >= max_retries:
        return RetryDecision(job=job, dead_letter=True)
    return RetryDecision(job=job.model_copy(update={"retries": job.retries + 1}), dead_letter=False)
