"""Main module for the thumbnail pipeline CLI."""

import argparse
import asyncio
import mimetypes
import os
import sys
from pathlib import Path
from typing import List, Optional, Set

from .core import (
    ConfigurationError,
    OffloadClient,
    OutputConfig,
    OutputFormat,
    ProcessingPipelineFactory,
    ProcessingResult,
    RemoteStoreConfig,
    ResultStatus,
    S3ClientFactory,
    create_tagger,
    get_logger,
    stage_assets,
)
from .core.image_utils import format_bytes
from .core.logging_config import set_level

VERSION = "0.1.0"

FORMAT_CHOICES = {"jpeg": OutputFormat.JPEG, "png": OutputFormat.PNG, "webp": OutputFormat.WEBP}


def _add_remote_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--access-key-id", default="", help="Object store access key")
    parser.add_argument(
        "--secret-access-key", default="", help="Object store secret key"
    )
    parser.add_argument("--region", default="us-east-1", help="Object store region")
    parser.add_argument(
        "--input-bucket", default="cloudthumb-app-input", help="Bucket sources are uploaded to"
    )
    parser.add_argument(
        "--output-bucket",
        default="cloudthumb-app-output",
        help="Bucket the remote worker writes thumbnails to",
    )
    parser.add_argument("--endpoint-url", default=None, help="Custom S3 endpoint (e.g. MinIO)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="thumbnail-pipeline",
        description="Hybrid thumbnail generation with remote offload and local fallback",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Render thumbnails locally
  thumbnail-pipeline generate photo1.jpg photo2.png --output-dir thumbs

  # Offload to the object store, falling back to local rendering
  thumbnail-pipeline generate *.jpg --output-dir thumbs --remote \\
                     --access-key-id KEY --secret-access-key SECRET

  # Check credentials and bucket permissions
  thumbnail-pipeline test-connection --access-key-id KEY --secret-access-key SECRET
        """,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    generate_parser = subparsers.add_parser("generate", help="Generate thumbnails")
    generate_parser.add_argument("files", nargs="+", help="Source images")
    generate_parser.add_argument(
        "--output-dir", required=True, help="Directory thumbnails are written to"
    )
    generate_parser.add_argument(
        "--format", choices=sorted(FORMAT_CHOICES), default="jpeg", help="Output format"
    )
    generate_parser.add_argument(
        "--max-width", type=int, default=300, help="Thumbnail width in pixels"
    )
    generate_parser.add_argument(
        "--quality",
        type=float,
        default=None,
        help="Custom encoder quality in [0.1, 1.0] (default: fixed 0.92)",
    )
    generate_parser.add_argument(
        "--compression",
        type=float,
        default=None,
        help="Resolution compression strength in [0.1, 0.9]",
    )
    generate_parser.add_argument(
        "--remote", action="store_true", help="Offload to the remote object store"
    )
    _add_remote_arguments(generate_parser)
    generate_parser.add_argument(
        "--tagging-api-key",
        default=os.getenv("TAGGING_API_KEY", ""),
        help="API key for AI tagging (default: $TAGGING_API_KEY; demo data when empty)",
    )
    generate_parser.add_argument(
        "--concurrency",
        type=int,
        default=8,
        help="Maximum items processed at once (0 for unbounded)",
    )
    generate_parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    connection_parser = subparsers.add_parser(
        "test-connection", help="Validate object store credentials"
    )
    _add_remote_arguments(connection_parser)

    subparsers.add_parser("version", help="Show version information")
    return parser


def _output_config(args: argparse.Namespace) -> OutputConfig:
    return OutputConfig(
        format=FORMAT_CHOICES[args.format],
        max_width=args.max_width,
        use_custom_quality=args.quality is not None,
        quality=args.quality if args.quality is not None else 0.8,
        use_compression=args.compression is not None,
        compression=args.compression if args.compression is not None else 0.5,
    )


def _store_config(args: argparse.Namespace, enabled: bool) -> RemoteStoreConfig:
    return RemoteStoreConfig(
        enabled=enabled,
        access_key_id=args.access_key_id,
        secret_access_key=args.secret_access_key,
        region=args.region,
        input_bucket=args.input_bucket,
        output_bucket=args.output_bucket,
        endpoint_url=args.endpoint_url,
    )


def _read_sources(paths: List[str]):
    for path in paths:
        content_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
        yield Path(path).name, Path(path).read_bytes(), content_type


def _unique_name(name: str, used: Set[str]) -> str:
    # Tagging can suggest the same name for several images
    candidate = name
    stem, dot, extension = name.rpartition(".")
    counter = 1
    while candidate in used:
        candidate = f"{stem}_{counter}{dot}{extension}"
        counter += 1
    used.add(candidate)
    return candidate


def _write_results(results: List[ProcessingResult], output_dir: Path) -> int:
    logger = get_logger()
    output_dir.mkdir(parents=True, exist_ok=True)
    failures = 0
    used: Set[str] = set()
    for result in results:
        if result.status is not ResultStatus.COMPLETED:
            failures += 1
            logger.error(f"{result.original_name}: {result.error}")
            continue
        file_name = _unique_name(result.final_name, used)
        (output_dir / file_name).write_bytes(result.encoded_thumbnail)
        logger.info(
            f"{result.original_name} -> {file_name} "
            f"({format_bytes(result.size_bytes)}, {result.source.value}, {result.duration_ms} ms)"
        )
    return failures


async def run_generate(args: argparse.Namespace) -> int:
    """Stage, process and write thumbnails. Returns the number of failed items."""
    config = _output_config(args)
    assets = stage_assets(_read_sources(args.files))
    if not assets:
        get_logger().info("No files to process")
        return 0

    tagger = create_tagger(args.tagging_api_key or None)
    concurrency = args.concurrency or None

    if not args.remote:
        orchestrator = ProcessingPipelineFactory.create_pipeline(
            tagger=tagger, max_concurrency=concurrency
        )
        results = await orchestrator.process_all(assets, config)
        return _write_results(results, Path(args.output_dir))

    store_config = _store_config(args, enabled=True)
    async with S3ClientFactory().open_client(store_config) as s3_client:
        offload_client = OffloadClient(s3_client, store_config)
        orchestrator = ProcessingPipelineFactory.create_pipeline(
            tagger=tagger, offload_client=offload_client, max_concurrency=concurrency
        )
        results = await orchestrator.process_all(assets, config)
    return _write_results(results, Path(args.output_dir))


async def run_test_connection(args: argparse.Namespace) -> bool:
    store_config = _store_config(args, enabled=False)
    if not store_config.has_credentials:
        raise ConfigurationError("Enter the access keys first.")
    async with S3ClientFactory().open_client(store_config) as s3_client:
        return await OffloadClient(s3_client, store_config).validate_connection()


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the ``thumbnail-pipeline`` command."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = get_logger()

    if args.command == "generate":
        if args.debug:
            set_level("DEBUG")
        failures = asyncio.run(run_generate(args))
        sys.exit(1 if failures else 0)

    elif args.command == "test-connection":
        try:
            asyncio.run(run_test_connection(args))
        except ConfigurationError as e:
            logger.error(f"Connection failed: {e}")
            sys.exit(1)
        logger.info("Connection OK")
        sys.exit(0)

    elif args.command == "version":
        print("Thumbnail Pipeline CLI")
        print(f"Version {VERSION}")
        sys.exit(0)

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
