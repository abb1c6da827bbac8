from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
import sys

from loguru import logger

from core.models import SourceFile, SpotFields
from core.services.events import EntryStatusEvent, EventChannel, SubmissionStateEvent
from core.services.photo_batch import PhotoBatch
from core.services.submission import SubmissionOrchestrator
from infrastructure.draft_store import InMemoryDraftStore, JsonDraftStore
from infrastructure.image_service import ImageNormalizer
from infrastructure.logging import init_logging_from_settings
from infrastructure.memory_backend import InMemoryBlobStorage, InMemorySpotBackend
from infrastructure.photo_service import PhotoUploadService
from infrastructure.preview_store import PreviewStore
from infrastructure.settings import JsonSettings

BASE_DIR = Path(__file__).parent


class ConsoleNotifier:
    """Prints status messages in place of toasts."""

    def notify(self, message: str, kind: str = "success") -> None:
        print(f"[{kind}] {message}")

    def navigate_back(self, list_id: str) -> None:
        print(f"-> back to list {list_id}")


def _parse_rating(item: str) -> tuple[str, int]:
    # Expect items like "Taste=5"
    name, sep, value = item.partition("=")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"rating must look like name=value: {item}")
    try:
        return name.strip(), int(value)
    except ValueError as ex:
        raise argparse.ArgumentTypeError(f"rating value must be an integer: {item}") from ex


def _load_settings(path: str | None) -> JsonSettings:
    settings_path = Path(path) if path else BASE_DIR / "settings.json"
    if settings_path.exists():
        return JsonSettings(settings_path)
    return JsonSettings.defaults()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Save a rated spot with photos to a shared list.")
    parser.add_argument("photos", nargs="*", help="jpeg, png, heic or heif files")
    parser.add_argument("--list-id", required=True)
    parser.add_argument("--spot-id", default=None, help="existing spot (edit mode)")
    parser.add_argument("--name", required=True)
    parser.add_argument("--category", default=None)
    parser.add_argument("--address", default="")
    parser.add_argument("--description", default="")
    parser.add_argument("--comment", default="")
    parser.add_argument(
        "--rate", action="append", default=[], type=_parse_rating, metavar="CRITERION=VALUE"
    )
    parser.add_argument("--cover", type=int, default=None, help="index of the cover photo")
    parser.add_argument("--settings", default=None)
    parser.add_argument("--verbose", action="store_true")
    return parser


async def run(args: argparse.Namespace) -> int:
    settings = _load_settings(args.settings)
    init_logging_from_settings(settings, console=args.verbose)

    storage = InMemoryBlobStorage()
    backend = InMemorySpotBackend()
    if args.spot_id:
        # Seed the in-memory backend so edit mode has something to update
        backend.spots[args.spot_id] = {
            "id": args.spot_id,
            "list_id": args.list_id,
            "name": args.name,
            "cover_photo_url": None,
        }

    channel = EventChannel()
    channel.subscribe(
        EntryStatusEvent,
        lambda ev: print(f"  {ev.entry_id[:8]} {ev.status.value}" + (f" ({ev.error})" if ev.error else "")),
    )
    channel.subscribe(SubmissionStateEvent, lambda ev: logger.debug("state {}", ev.state.value))

    uploader = PhotoUploadService(storage, backend, ImageNormalizer(settings), settings)
    drafts = JsonDraftStore.from_settings(settings) or InMemoryDraftStore()
    orchestrator = SubmissionOrchestrator(
        backend, uploader, channel=channel, notifier=ConsoleNotifier(), drafts=drafts
    )

    fields = SpotFields(
        name=args.name,
        category=args.category,
        address=args.address,
        description=args.description,
        comment=args.comment,
        ratings=dict(args.rate),
    )
    orchestrator.save_draft(args.list_id, args.spot_id, fields)

    max_photos = int(settings.get("upload.max_photos", 8) or 8)
    with PhotoBatch(PreviewStore(settings), max_photos=max_photos) as batch:
        added = batch.add_files(SourceFile.from_path(p) for p in args.photos)
        for kind, message in added.messages:
            print(f"[{kind}] {message}")
        if args.cover is not None and 0 <= args.cover < len(batch):
            batch.mark_cover(batch.entry_ids[args.cover])

        result = await orchestrator.submit(args.list_id, fields, batch, spot_id=args.spot_id)

    for field_name, message in result.field_errors.items():
        print(f"  {field_name}: {message}")
    print(f"state={result.state.value} spot={result.spot_id} photos={len(result.photos)}")
    for photo in result.photos:
        cover = " (cover)" if photo.is_cover else ""
        print(f"  {photo.public_url} {photo.width}x{photo.height}{cover}")
    return 0 if result.ok else 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
