"""HTTP collaborators: job submission and one-shot status fetch."""

from taskwatch.api.client import JobApiClient, progress_endpoint
from taskwatch.api.models import BookRequest

__all__ = [
    "BookRequest",
    "JobApiClient",
    "progress_endpoint",
]
