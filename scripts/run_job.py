#!/usr/bin/env python3
"""CLI helper for creating and running an extraction job in-process."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from llmextract.jobs.runner import JobRunner, result_payload
from llmextract.jobs.store import JobStore
from llmextract.utils.logging import configure_logging
from llmextract.webhooks import WebhookConfig


async def _main(args: argparse.Namespace) -> None:
    runner = JobRunner(JobStore())
    webhook = WebhookConfig(url=args.webhook, secret=args.secret) if args.webhook else None
    request = {"instruction": args.instruction}
    if args.file:
        with open(args.file, encoding="utf-8") as handle:
            request["content"] = handle.read()
    job = runner.submit(args.url, request=request, webhook=webhook)
    print(f"Created job {job.id} for {args.url}")
    job = await runner.run(job.id)
    print(f"Job {job.id} finished with status={job.status}")
    if job.error_msg:
        print("Error:", job.error_msg)
    result = result_payload(job)
    if result is not None:
        print(json.dumps(result, indent=2, ensure_ascii=False))


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("url", help="Source URL (or a label when --file is given)")
    parser.add_argument("--instruction", default="", help="What to extract")
    parser.add_argument("--file", help="Read content from a local text file instead of fetching")
    parser.add_argument("--webhook", help="Callback URL notified on completion")
    parser.add_argument("--secret", help="HMAC secret for the webhook signature")
    return parser.parse_args(argv)


if __name__ == "__main__":
    configure_logging()
    asyncio.run(_main(parse_args(sys.argv[1:])))
