"""
FloraLens CLI - Command Line Interface

Terminal counterpart of the mobile home and profile screens:

    floralens scan fern.jpg        upload a photo and print the analysis card
    floralens history              list your scans, newest first
    floralens show <scan-id>       print one scan

The API address comes from --base-url or FLORALENS_URL, the bearer token
from --token or FLORALENS_TOKEN.
"""

import argparse
import asyncio
import os
import sys
from typing import List, Optional

from app.client import DEFAULT_BASE_URL, ScanClient, ScanClientError
from app.schemas.scan import FloraFaunaAnalysis, ScanResponse


def _flag(value: bool, label: str) -> str:
    return f"Safe to {label}" if value else f"Not Safe to {label}"


def render_analysis(analysis: FloraFaunaAnalysis, image_url: Optional[str] = None) -> str:
    """The analysis card shown after an upload."""
    lines = [
        analysis.common_name,
        f"  {analysis.species}",
        "",
        f"  [{_flag(analysis.is_safe_to_eat, 'Eat')}]  [{_flag(analysis.is_safe_to_touch, 'Touch')}]",
        f"  Confidence: {analysis.confidence.value.upper()}",
        "",
        f"  {analysis.description}",
    ]
    if analysis.warnings:
        lines += ["", f"  Warnings: {analysis.warnings}"]
    if image_url:
        lines += ["", f"  Image: {image_url}"]
    return "\n".join(lines)


def render_scan(scan: ScanResponse) -> str:
    analysis = FloraFaunaAnalysis(
        species=scan.species,
        common_name=scan.common_name,
        is_safe_to_eat=scan.is_safe_to_eat,
        is_safe_to_touch=scan.is_safe_to_touch,
        confidence=scan.confidence,
        warnings=scan.warnings,
        description=scan.description,
    )
    header = f"Scan {scan.id} ({scan.created_at:%Y-%m-%d %H:%M})"
    return f"{header}\n{render_analysis(analysis, scan.image_url)}"


def render_history(scans: List[ScanResponse]) -> str:
    """One line per scan, like the profile screen's history list."""
    if not scans:
        return "No scans yet. Try: floralens scan <photo>"
    lines = [f"{len(scans)} scan(s)"]
    for scan in scans:
        eat = "eat:yes" if scan.is_safe_to_eat else "eat:no"
        touch = "touch:yes" if scan.is_safe_to_touch else "touch:no"
        lines.append(
            f"{scan.created_at:%Y-%m-%d}  {scan.common_name} ({scan.species})  "
            f"{eat} {touch}  {scan.confidence.value.upper()}  {scan.id}"
        )
    return "\n".join(lines)


async def scan_command(client: ScanClient, args) -> None:
    result = await client.upload(args.image)
    print(render_analysis(result.analysis, result.image_url))
    print(f"\nSaved as {result.scan_id}")


async def history_command(client: ScanClient, args) -> None:
    print(render_history(await client.list_scans()))


async def show_command(client: ScanClient, args) -> None:
    print(render_scan(await client.get_scan(args.scan_id)))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="floralens",
        description="Identify plants, fungi and animals from photos",
    )
    parser.add_argument(
        "--base-url",
        default=os.environ.get("FLORALENS_URL", DEFAULT_BASE_URL),
        help="API base URL (default: $FLORALENS_URL or %(default)s)",
    )
    parser.add_argument(
        "--token",
        default=os.environ.get("FLORALENS_TOKEN"),
        help="Bearer token (default: $FLORALENS_TOKEN)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    scan_parser = subparsers.add_parser("scan", help="Upload a photo and identify it")
    scan_parser.add_argument("image", help="Path to a JPEG/PNG photo (max 10 MiB)")
    scan_parser.set_defaults(handler=scan_command)

    history_parser = subparsers.add_parser("history", help="List your scans, newest first")
    history_parser.set_defaults(handler=history_command)

    show_parser = subparsers.add_parser("show", help="Show one scan")
    show_parser.add_argument("scan_id", help="Scan id")
    show_parser.set_defaults(handler=show_command)

    return parser


async def async_main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1
    if not args.token:
        print("No token: pass --token or set FLORALENS_TOKEN", file=sys.stderr)
        return 1

    async with ScanClient(args.base_url, args.token) as client:
        try:
            await args.handler(client, args)
        except ScanClientError as e:
            suffix = f" (request {e.request_id})" if e.request_id else ""
            print(f"Error {e.status}: {e.message}{suffix}", file=sys.stderr)
            return 1
        except FileNotFoundError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
    return 0


def main():
    """CLI entry point."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
