"""Quizcraft - question set generation

Simple CLI for running one generation batch against the generation backend,
or serving the streaming API.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from quizcraft.api.deps import build_http_client
from quizcraft.models.jobs import ProgressEntry
from quizcraft.services.fan_out import BatchError
from quizcraft.services.progress import ProgressSummary, ProgressTracker
from quizcraft.workflows.base import OutcomeStatus
from quizcraft.workflows.catalog import WORKFLOWS, get_workflow


def print_progress(key: str, entry: ProgressEntry, summary: ProgressSummary) -> None:
    print(
        f"  [{summary.completed}/{summary.total} | {summary.average_percent:5.1f}%] "
        f"{key}: {entry.percent}% {entry.status}"
    )


async def run_generation(
    workflow_name: str,
    request_path: Path,
    output: Path | None = None,
    max_parallel: int | None = None,
    timeout: float | None = None,
) -> int:
    """Run one workflow batch from a JSON request file."""
    workflow_cls, request_cls = get_workflow(workflow_name)
    request = request_cls.model_validate_json(request_path.read_text(encoding="utf-8"))

    print(f"Generating {workflow_name} questions")
    print("-" * 50)

    tracker = ProgressTracker()
    tracker.subscribe(print_progress)

    def on_update(items, used_prompt, intermediate):
        if intermediate:
            print(f"\n[~] {len(items)} basic items ready, generating supplementary items...")

    async with build_http_client() as client:
        workflow = workflow_cls(
            client,
            tracker=tracker,
            max_parallel=max_parallel,
            job_timeout=timeout,
        )
        outcome = await workflow.generate(
            request,
            existing=request.existing_items,
            on_update=on_update,
        )

    response = outcome.to_response()
    print(f"\n[*] {outcome.message}")
    for key, message in response.errors.items():
        print(f"  [!] {key}: {message}")

    payload = json.dumps(response.model_dump(by_alias=True), ensure_ascii=False, indent=2)
    if output:
        output.write_text(payload, encoding="utf-8")
        print(f"Saved {len(response.items)} items to {output}")
    else:
        print(payload)

    return 1 if outcome.status is OutcomeStatus.FAILED else 0


def serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("quizcraft.main:app", host=host, port=port)


def main():
    parser = argparse.ArgumentParser(description="Quizcraft question set generation")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name in WORKFLOWS:
        sub = subparsers.add_parser(name, help=f"Generate {name} questions")
        sub.add_argument("request", type=Path, help="JSON request file")
        sub.add_argument("--output", "-o", type=Path, help="Write the result JSON here")
        sub.add_argument("--max-parallel", type=int, help="Cap concurrent jobs (default: unbounded)")
        sub.add_argument("--timeout", type=float, help="Per-job timeout in seconds (default: none)")

    serve_parser = subparsers.add_parser("serve", help="Run the streaming API")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    args = parser.parse_args()

    if args.command == "serve":
        serve(args.host, args.port)
        return

    try:
        code = asyncio.run(
            run_generation(
                args.command,
                args.request,
                output=args.output,
                max_parallel=args.max_parallel,
                timeout=args.timeout,
            )
        )
    except ValidationError as e:
        print(f"\n[!] Invalid request: {e}")
        code = 2
    except BatchError as e:
        print(f"\n[!] Error: {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
