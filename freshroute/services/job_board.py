"""
Transporter job board: the list of assigned jobs with search.
"""

import logging
from typing import List, Optional, Tuple

from freshroute.client.api_client import BackendClient
from freshroute.core.errors import BackendError
from freshroute.schemas.job import JobBoard, JobSummary

logger = logging.getLogger(__name__)


def load_job_board(client: BackendClient) -> Tuple[JobBoard, Optional[str]]:
    """
    Fetch the job board. Backend failures come back as an empty board
    with an error message so the screen stays usable for a retry.

    MissingTokenError is not caught: without a session there is nothing
    to show.
    """
    try:
        return client.get_jobs(), None
    except BackendError as e:
        logger.warning("Failed to load job board: %s", e)
        return JobBoard(), "Failed to load jobs. Pull to refresh to try again."


def filter_jobs(jobs: List[JobSummary], text: Optional[str]) -> List[JobSummary]:
    """Case-insensitive match on route name or status; empty text keeps all."""
    if not text:
        return list(jobs)
    needle = text.lower()
    return [
        job for job in jobs
        if needle in job.route_name.lower() or needle in job.status.lower()
    ]
