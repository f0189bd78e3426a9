"""Command-line client: submit a professor lookup and wait for the summary.

Usage::

    profrater "Jane Doe" "Test University" [--question "Is the final hard?"]
              [--course CS101]
              [--url http://localhost:8000] [--interval 1.5] [--max-wait 600]

The summary is printed to stdout when the job completes.  Progress lines go
to stderr.  Ctrl-C stops polling; the job keeps running on the server.

Exit codes:
    0: Job completed.
    1: Job failed, polling timed out, or the request was rejected.
    130: Interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from typing import Optional, Sequence

from profrater.client.poller import JobPoller, PollState
from profrater.config.settings import get_settings
from profrater.core.exceptions import PollCancelledError, ProfRaterError
from profrater.core.schemas.jobs import JobStatus, JobStatusResponse

_PROGRESS = {
    PollState.QUEUED: "Job queued, waiting for a worker...",
    PollState.SCRAPING: "Found professor! Scraping reviews and generating summary...",
    PollState.COMPLETE: "Done.",
    PollState.ERROR: "Job failed.",
}


def _report(state: PollState, job: JobStatusResponse) -> None:
    print(f"[profrater] {_PROGRESS[state]}", file=sys.stderr)


def _print_result(job: JobStatusResponse) -> int:
    if job.result is None:
        print(f"[profrater] ERROR: job {job.id} finished without a result", file=sys.stderr)
        return 1
    aggregate = job.result.subject_aggregate
    print(f"# {aggregate.professor_name or job.professor_name} ({job.university})")
    print(
        f"Overall {aggregate.overall_rating:g}/5 from {aggregate.total_ratings} ratings, "
        f"difficulty {aggregate.difficulty_rating:g}/5, "
        f"{aggregate.would_take_again_percent:g}% would take again, "
        f"{len(job.result.reviews)} reviews analysed."
    )
    stats = job.result.stats
    if stats is not None and job.course:
        print(
            f"{job.course}: average rating {stats.average_rating:.2f}/5, "
            f"average difficulty {stats.average_difficulty:.2f}/5 "
            f"over {stats.total_reviews} reviews."
        )
    print()
    print(job.result.summary)
    return 0


async def _run(args: argparse.Namespace) -> int:
    cancel = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel.set)
        handles_sigint = True
    except NotImplementedError:
        handles_sigint = False  # Windows: KeyboardInterrupt still stops asyncio.run()

    try:
        async with JobPoller(
            args.url,
            interval=args.interval,
            max_wait=args.max_wait,
            max_attempts=args.max_attempts,
        ) as poller:
            job_id = await poller.submit(
                args.professor, args.university, args.question, args.course
            )
            print(f"[profrater] Job {job_id} created", file=sys.stderr)
            job = await poller.wait(job_id, on_update=_report, cancel_event=cancel)
    except PollCancelledError:
        print("[profrater] Stopped polling.", file=sys.stderr)
        return 130
    except ProfRaterError as exc:
        print(f"[profrater] ERROR: {exc}", file=sys.stderr)
        return 1
    finally:
        if handles_sigint:
            loop.remove_signal_handler(signal.SIGINT)

    if job.status == JobStatus.ERROR:
        print(f"[profrater] ERROR: {job.error}", file=sys.stderr)
        return 1
    return _print_result(job)


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="profrater",
        description="Summarise a professor's student reviews.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("professor", help="Professor's full name.")
    parser.add_argument("university", help="University name.")
    parser.add_argument("-q", "--question", default=None, help="Optional question to answer.")
    parser.add_argument(
        "-c", "--course", default=None, help="Only analyse reviews for this course."
    )
    parser.add_argument(
        "--url",
        default=settings.worker_url,
        help="Base URL of the job API (default: %(default)s).",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.poll_interval_seconds,
        help="Seconds between status checks (default: %(default)s).",
    )
    parser.add_argument("--max-wait", type=float, default=None, help="Give up after N seconds.")
    parser.add_argument("--max-attempts", type=int, default=None, help="Give up after N checks.")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Entry point for the ``profrater`` console script."""
    args = _parse_args(argv)
    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
