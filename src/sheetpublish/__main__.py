"""CLI entry point for sheetpublish.

Usage:
    python -m sheetpublish configure <spreadsheet_id_or_url> --bucket B --region R \
        --access-key-id K --secret-key S [--path P] [--track-changes --updated-at N]
    python -m sheetpublish show <spreadsheet_id_or_url>
    python -m sheetpublish publish <spreadsheet_id_or_url> [--edited-sheet N] [--output-dir DIR]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import re
import sys
from pathlib import Path

from loguru import logger

from sheetpublish import config as cfg
from sheetpublish.client import PublishClient, configure_document
from sheetpublish.config import PublishConfig, Settings, get_settings
from sheetpublish.credentials import CredentialsManager
from sheetpublish.exceptions import SheetPublishError
from sheetpublish.logging import configure_logging
from sheetpublish.properties import JsonFilePropertyStore
from sheetpublish.publisher import PublishStatus, check_publishable
from sheetpublish.storage import LocalObjectStore, ObjectStore, S3ObjectStore
from sheetpublish.transport import GoogleSheetsTransport
from sheetpublish.triggers import JsonFileSubscriptionRegistry


def parse_spreadsheet_id(id_or_url: str) -> str:
    """Extract spreadsheet ID from a URL or return as-is if already an ID."""
    # https://docs.google.com/spreadsheets/d/SPREADSHEET_ID/edit...
    url_pattern = r"docs\.google\.com/spreadsheets/d/([a-zA-Z0-9_-]+)"
    match = re.search(url_pattern, id_or_url)
    if match:
        return match.group(1)
    return id_or_url


def cmd_configure(args: argparse.Namespace, settings: Settings) -> int:
    """Save a document's publish configuration."""
    spreadsheet_id = parse_spreadsheet_id(args.spreadsheet)
    form = {
        cfg.BUCKET_NAME: args.bucket,
        cfg.REGION: args.region,
        cfg.PATH: args.path or "",
        cfg.ACCESS_KEY_ID: args.access_key_id,
        cfg.SECRET_KEY: args.secret_key,
    }
    if args.track_changes:
        form[cfg.TRACK_CHANGES] = cfg.TRACK_CHANGES_ENABLED
    if args.updated_at is not None:
        form[cfg.UPDATED_AT] = args.updated_at

    try:
        result = configure_document(
            JsonFilePropertyStore(settings.state_dir),
            JsonFileSubscriptionRegistry(settings.state_dir),
            spreadsheet_id,
            form,
        )
    except SheetPublishError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(result.message)
    return 0


def cmd_show(args: argparse.Namespace, settings: Settings) -> int:
    """Print a document's publish configuration."""
    spreadsheet_id = parse_spreadsheet_id(args.spreadsheet)
    try:
        props = JsonFilePropertyStore(settings.state_dir).load(spreadsheet_id)
    except SheetPublishError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    config = PublishConfig.from_properties(props)
    if not config.is_configured:
        print(f"Spreadsheet {spreadsheet_id} is not configured.", file=sys.stderr)
    print(json.dumps(config.masked(), indent=2, sort_keys=True))
    return 0


async def cmd_publish(args: argparse.Namespace, settings: Settings) -> int:
    """Publish the first sheet of a spreadsheet."""
    spreadsheet_id = parse_spreadsheet_id(args.spreadsheet)
    properties = JsonFilePropertyStore(settings.state_dir)

    try:
        config = PublishConfig.from_properties(properties.load(spreadsheet_id))
    except SheetPublishError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    declined = check_publishable(spreadsheet_id, config, args.edited_sheet)
    if declined is not None:
        print(declined.message)
        return 0

    try:
        manager = CredentialsManager(settings.service_account_path)
        token = manager.get_token()
    except Exception as e:
        print(f"Authentication failed: {e}", file=sys.stderr)
        return 1

    transport = GoogleSheetsTransport(
        access_token=token.access_token, timeout=settings.request_timeout
    )

    if args.output_dir:
        local_store = LocalObjectStore(Path(args.output_dir))

        def store_factory(config: PublishConfig) -> ObjectStore:
            return local_store

    else:

        def store_factory(config: PublishConfig) -> ObjectStore:
            return S3ObjectStore.from_config(
                config, endpoint_url=settings.s3_endpoint_url
            )

    client = PublishClient(transport, properties, store_factory)

    try:
        result = await client.publish(
            spreadsheet_id, edited_sheet_index=args.edited_sheet
        )
    except SheetPublishError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        await transport.close()

    print(result.message)
    return 1 if result.status is PublishStatus.FAILED else 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="sheetpublish",
        description="Publish the first sheet of a Google Sheet as JSON to S3",
    )
    parser.add_argument(
        "--log-level",
        help="Minimum log level (overrides SHEETPUBLISH_LOG_LEVEL)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    configure_parser = subparsers.add_parser(
        "configure",
        help="Save the publish configuration of a spreadsheet",
    )
    configure_parser.add_argument("spreadsheet", help="Spreadsheet ID or URL")
    configure_parser.add_argument("--bucket", required=True, help="Bucket name")
    configure_parser.add_argument("--region", required=True, help="Bucket region")
    configure_parser.add_argument("--path", help="Key prefix inside the bucket")
    configure_parser.add_argument(
        "--access-key-id", required=True, help="Access key id for the upload"
    )
    configure_parser.add_argument(
        "--secret-key", required=True, help="Secret access key for the upload"
    )
    configure_parser.add_argument(
        "--track-changes",
        action="store_true",
        help="Publish only rows changed since the last publish, under timestamped keys",
    )
    configure_parser.add_argument(
        "--updated-at",
        help="Zero-based index of the column holding each row's last update time",
    )

    show_parser = subparsers.add_parser(
        "show",
        help="Show the publish configuration of a spreadsheet",
    )
    show_parser.add_argument("spreadsheet", help="Spreadsheet ID or URL")

    publish_parser = subparsers.add_parser(
        "publish",
        help="Publish the first sheet of a spreadsheet",
    )
    publish_parser.add_argument("spreadsheet", help="Spreadsheet ID or URL")
    publish_parser.add_argument(
        "--edited-sheet",
        type=int,
        help="Index of the edited sheet when called from a change notification",
    )
    publish_parser.add_argument(
        "--output-dir",
        help="Write the JSON below this directory instead of uploading (dry run)",
    )

    args = parser.parse_args(argv)

    try:
        settings = get_settings()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    log_level = (args.log_level or settings.log_level).upper()
    configure_logging(is_production=settings.is_production, log_level=log_level)
    logger.debug("Running {} with state in {}", args.command, settings.state_dir)

    if args.command == "configure":
        return cmd_configure(args, settings)
    if args.command == "show":
        return cmd_show(args, settings)
    if args.command == "publish":
        return asyncio.run(cmd_publish(args, settings))

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
