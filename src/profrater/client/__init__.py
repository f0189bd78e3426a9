"""Client side of the job API."""

from profrater.client.poller import JobPoller, PollState

__all__ = ["JobPoller", "PollState"]
