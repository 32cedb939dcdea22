"""
Command line uploader.

Usage:
  New upload:    upload-engine upload <file> --meta title="Lecture 1"
  Resume upload: upload-engine resume <session_id> <file>
  Cancel:        upload-engine cancel <session_id>
  Saved:         upload-engine sessions
"""
import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime
from typing import Optional

from ..core.config import settings
from .errors import AlreadyComplete, Cancelled, UploadError
from .sources import FileByteSource
from .uploader import ResumableUploader, UploadOptions

logger = logging.getLogger(__name__)


def _parse_meta(pairs: list[str]) -> dict[str, str]:
    metadata = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Expected key=value, got {pair!r}")
        metadata[key.strip()] = value
    return metadata


def _format_eta(seconds: Optional[float]) -> str:
    if seconds is None:
        return "--"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m{secs:02d}s"


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--api-url", default=settings.UPLOAD_API_URL, help="Upload server base URL")
    common.add_argument("--token", default=os.getenv("UPLOAD_TOKEN"), help="Bearer credential (or UPLOAD_TOKEN)")
    common.add_argument("--chunk-size", type=int, default=None, help="Requested chunk size in bytes")
    common.add_argument("--concurrency", type=int, default=settings.UPLOAD_CONCURRENCY)
    common.add_argument("--mode", choices=["auto", "chunked", "simple"], default="auto")

    parser = argparse.ArgumentParser(prog="upload-engine", description="Resumable chunked uploads")
    commands = parser.add_subparsers(dest="command", required=True)

    upload = commands.add_parser("upload", parents=[common], help="Upload a file")
    upload.add_argument("file")
    upload.add_argument("--meta", action="append", default=[], metavar="KEY=VALUE")

    resume = commands.add_parser("resume", parents=[common], help="Resume an interrupted upload")
    resume.add_argument("session_id")
    resume.add_argument("file")

    cancel = commands.add_parser("cancel", parents=[common], help="Cancel an upload session")
    cancel.add_argument("session_id")

    commands.add_parser("sessions", parents=[common], help="List locally saved upload sessions")
    return parser


def _options(args) -> UploadOptions:
    def on_progress(percent: float, uploaded: int, total: int):
        print(f"  ✓ {uploaded}/{total} chunks ({percent:.1f}%)")

    def on_speed(bytes_per_second: float, remaining: Optional[float]):
        print(f"  ⏱  {bytes_per_second / (1024 * 1024):.2f} MB/s, ETA {_format_eta(remaining)}")

    return UploadOptions.from_settings(
        settings,
        mode=args.mode,
        chunk_size=args.chunk_size,
        concurrency=args.concurrency,
        on_progress=on_progress,
        on_speed=on_speed
    )


async def run(args) -> int:
    uploader = ResumableUploader(args.api_url, options=_options(args))

    if args.command == "sessions":
        saved = uploader.saved_sessions()
        if not saved:
            print("No saved upload sessions")
        for record in saved:
            started = datetime.fromtimestamp(record.timestamp).isoformat(timespec="seconds")
            print(f"{record.session_id}  {record.file_name}  {record.file_size} bytes  started {started}")
        return 0

    if not args.token:
        print("✗ A bearer token is required (--token or UPLOAD_TOKEN)", file=sys.stderr)
        return 2

    if args.command == "cancel":
        await uploader.cancel(args.session_id, args.token)
        print(f"✓ Cancelled {args.session_id}")
        return 0

    source = FileByteSource(args.file)
    session_hint = None
    try:
        if args.command == "upload":
            print(f"Uploading {source.name} ({source.size / (1024 * 1024):.2f} MB)...")
            asset = await uploader.upload(source, _parse_meta(args.meta), args.token)
        else:
            session_hint = args.session_id
            print(f"Resuming upload session: {args.session_id}")
            asset = await uploader.resume(args.session_id, source, args.token)
    except AlreadyComplete as e:
        print(f"✓ {e}")
        return 0
    except Cancelled:
        print("✗ Upload cancelled", file=sys.stderr)
        return 130
    except UploadError as e:
        session_hint = uploader.active_session_id or session_hint
        print(f"✗ Upload failed: {e}", file=sys.stderr)
        saved = [record.session_id for record in uploader.saved_sessions()]
        hint = session_hint if session_hint in saved else (saved[0] if saved else None)
        if hint:
            print(f"  Resume with: upload-engine resume {hint} {args.file}", file=sys.stderr)
        return 1

    print("\n✓ Upload completed successfully!")
    print(f"  Asset: {asset.asset_id}")
    print(f"  Key:   {asset.storage_key}")
    print(f"  SHA256: {asset.content_hash[:16]}...")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "upload":
        try:
            _parse_meta(args.meta)
        except argparse.ArgumentTypeError as e:
            parser.error(str(e))
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
