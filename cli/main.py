"""docvault-admin entry point."""

import argparse
import json
import os
import sys
from typing import List, Optional

from common.logging_config import setup_logging
from cli.admin_client import AdminClient, AdminError
from cli.config import Config
from cli.utils import render_queue_status

PRIORITIES = ["low", "normal", "high"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="docvault-admin", description="Administer DocVault replication")
    parser.add_argument("--url", help="Vault base URL (default: $DOCVAULT_URL)")
    parser.add_argument("--timeout", type=float, help="Request timeout in seconds")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--json", action="store_true", help="Print raw JSON responses")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("status", help="Show replication queue status")

    process = subparsers.add_parser("process", help="Process one queue batch")
    process.add_argument("--batch-size", type=int)
    process.add_argument("--max-retries", type=int)
    process.add_argument("--no-priority", action="store_true", help="Ignore priority, oldest first")
    process.add_argument("--include-failed", action="store_true")

    sync = subparsers.add_parser("sync", help="Replicate one file now")
    sync.add_argument("file_id")
    sync.add_argument("--priority", choices=PRIORITIES)
    sync.add_argument("--reset-retries", action="store_true")
    sync.add_argument("--keep-priority", action="store_true", help="Do not persist --priority")

    verify = subparsers.add_parser("verify", help="Re-check a synced file's remote copy")
    verify.add_argument("file_id")

    reset = subparsers.add_parser("reset", help="Reset retry counters (all FAILED records by default)")
    reset.add_argument("file_ids", nargs="*")

    priority = subparsers.add_parser("priority", help="Change a file's replication priority")
    priority.add_argument("file_id")
    priority.add_argument("priority", choices=PRIORITIES)

    return parser


def run_command(args: argparse.Namespace, client: AdminClient) -> str:
    if args.command == "status":
        result = client.queue_status()
        return json.dumps(result, indent=2) if args.json else render_queue_status(result)

    if args.command == "process":
        result = client.process_queue(
            batch_size=args.batch_size,
            priority_first=not args.no_priority,
            max_retries=args.max_retries,
            include_failed=args.include_failed,
        )
        if args.json:
            return json.dumps(result, indent=2)
        lines = [f"Processed {result['processed']}: {result['successful']} synced, {result['failed']} failed"]
        for item in result["results"]:
            if not item["success"]:
                lines.append(f"  {item['file_id']} -> {item['status']}: {item['error']}")
        return "\n".join(lines)

    if args.command == "sync":
        result = client.force_sync(
            args.file_id,
            force_priority=args.priority,
            reset_retries=args.reset_retries,
            update_priority=not args.keep_priority,
        )
        if args.json:
            return json.dumps(result, indent=2)
        if result["success"]:
            return f"{args.file_id} synced"
        return f"{args.file_id} failed ({result['status']}): {result['error']}"

    if args.command == "verify":
        result = client.verify_remote(args.file_id)
        if args.json:
            return json.dumps(result, indent=2)
        if result["verified"]:
            return f"{args.file_id} remote copy verified"
        return f"{args.file_id} not verified ({result['status']}): {result['reason']}"

    if args.command == "reset":
        count = client.reset_retries(args.file_ids or None)
        return f"Reset {count} record(s)"

    if args.command == "priority":
        result = client.set_priority(args.file_id, args.priority)
        return json.dumps(result, indent=2) if args.json else f"{args.file_id} priority is now {result['priority']}"

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for docvault-admin."""
    args = build_parser().parse_args(argv)

    log_level = 'DEBUG' if args.debug else os.getenv('LOG_LEVEL', 'WARNING')
    logger = setup_logging('cli', log_level=log_level)

    config = Config(vault_url=args.url, timeout=args.timeout)
    try:
        with AdminClient(config) as client:
            print(run_command(args, client))
    except AdminError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ConnectionError as e:
        logger.error(f"Connection failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
