"""Command line entry point: submit, list and manage video generation jobs."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Any

from taskwatch.config import Settings, get_settings
from taskwatch.core.exceptions import RemoteServiceError, SubmissionFailedError
from taskwatch.core.logging import initialize_logging
from taskwatch.factory import build_http_client, build_service, build_tracker
from taskwatch.jobs.models import Job, JobStatus, ListFilters, Pagination
from taskwatch.jobs.scheduler import AsyncioScheduler
from taskwatch.notifications.service import CollectingNotifier, LoggingNotifier, NotificationHub
from taskwatch.services.contracts import RemoteJobService, VideoModel

logger = logging.getLogger("taskwatch.cli")

EXIT_OK = 0
EXIT_REMOTE_ERROR = 1
EXIT_SUBMISSION_FAILED = 2
EXIT_QUOTA = 3


def build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(prog="taskwatch", description="Submit and watch video generation jobs.")
  commands = parser.add_subparsers(dest="command", required=True)

  submit = commands.add_parser("submit", help="Submit a generation job.")
  submit.add_argument("--prompt", required=True)
  submit.add_argument("--model-id", dest="model_id")
  submit.add_argument("--resolution")
  submit.add_argument("--ratio")
  submit.add_argument("--duration", type=int)
  submit.add_argument("--wait", action="store_true", help="Keep polling until the job finishes or polling gives up.")

  listing = commands.add_parser("list", help="Show one page of jobs.")
  listing.add_argument("--page", type=int, default=1)
  listing.add_argument("--limit", type=int)
  listing.add_argument("--status", choices=[status.value for status in JobStatus])

  gallery = commands.add_parser("gallery", help="Show one page of public jobs.")
  gallery.add_argument("--page", type=int, default=1)
  gallery.add_argument("--limit", type=int, default=20)
  gallery.add_argument("--model-id", dest="model_id")

  commands.add_parser("models", help="List the models jobs can be submitted with.")
  commands.add_parser("stats", help="Show usage totals.")

  for name, help_text in (("favorite", "Toggle the favourite flag of a job record."), ("public", "Toggle whether a job record is shown in the gallery.")):
    toggle = commands.add_parser(name, help=help_text)
    toggle.add_argument("record_id")
  return parser


def _model_id(raw: str) -> int | str:
  return int(raw) if raw.isdigit() else raw


def _request_fields(args: argparse.Namespace) -> dict[str, Any]:
  fields: dict[str, Any] = {"prompt": args.prompt}
  if args.model_id:
    fields["model_id"] = _model_id(args.model_id)
  for name in ("resolution", "ratio", "duration"):
    value = getattr(args, name)
    if value is not None:
      fields[name] = value
  return fields


def format_job(job: Job) -> str:
  detail = job.result_refs[0] if job.result_refs else (job.error_info or "")
  return "\t".join([job.id, job.status.value, f"{job.progress}%", job.title or "", detail])


def format_model(model: VideoModel) -> str:
  options = ",".join(model.resolutions)
  return "\t".join([model.id, model.label, model.provider or "", options])


async def _default_model_id(service: RemoteJobService) -> int | str | None:
  """First model the service offers, used when no model was picked."""
  try:
    models = await service.models()
  except RemoteServiceError as exc:
    logger.warning("Could not load models, leaving the choice to the server: %s", exc)
    return None
  return _model_id(models[0].id) if models else None


async def _run_submit(args: argparse.Namespace, settings: Settings) -> int:
  collected = CollectingNotifier()
  scheduler = AsyncioScheduler()
  async with build_http_client(settings) as client:
    service = build_service(settings, client=client)
    tracker = build_tracker(settings, service=service, notifier=NotificationHub(LoggingNotifier(), collected), scheduler=scheduler)
    fields = _request_fields(args)
    if "model_id" not in fields:
      model_id = await _default_model_id(service)
      if model_id is not None:
        fields["model_id"] = model_id
    try:
      try:
        job = await tracker.submit(fields)
      except SubmissionFailedError as exc:
        print(f"Submission failed ({exc.reason.value}): {exc.message}", file=sys.stderr)
        return EXIT_QUOTA if exc.is_quota else EXIT_SUBMISSION_FAILED

      print(format_job(job))
      if not args.wait:
        return EXIT_OK

      while tracker.is_tracked(job.id):
        await asyncio.sleep(0.2)

      final = tracker.store.get(job.id) or job
      print(format_job(final))
      for notification in collected.notifications:
        if notification.job_id == job.id:
          print(f"{notification.kind.value}: {notification.message}", file=sys.stderr)
      return EXIT_OK
    finally:
      await tracker.aclose()
      await scheduler.aclose()


async def _run_list(args: argparse.Namespace, settings: Settings) -> int:
  async with build_http_client(settings) as client:
    tracker = build_tracker(settings, client=client)
    filters = ListFilters(status=JobStatus(args.status) if args.status else None)
    try:
      jobs = await tracker.refresh(filters, page=args.page, limit=args.limit, resume=False)
    except RemoteServiceError as exc:
      print(f"Could not load jobs: {exc}", file=sys.stderr)
      return EXIT_REMOTE_ERROR

    pagination = tracker.store.pagination
    for job in jobs:
      print(format_job(job))
    print(f"page {pagination.page}, {len(jobs)} of {pagination.total}", file=sys.stderr)
    return EXIT_OK


async def _run_service(args: argparse.Namespace, settings: Settings) -> int:
  """Commands that talk to the service without tracking anything."""
  async with build_http_client(settings) as client:
    service = build_service(settings, client=client)
    try:
      if args.command == "models":
        for model in await service.models():
          print(format_model(model))
      elif args.command == "stats":
        stats = await service.stats()
        print(f"total {stats.total}, succeeded {stats.succeeded}, failed {stats.failed}, today {stats.today}")
        print(f"favorites {stats.favorites}, public {stats.public}, credits {stats.credits:g}")
      elif args.command == "gallery":
        page = await service.gallery(Pagination(page=args.page, limit=args.limit), model_id=args.model_id)
        for job in page.items:
          print(format_job(job))
        print(f"page {page.pagination.page}, {len(page.items)} of {page.pagination.total}", file=sys.stderr)
      else:
        toggle = service.toggle_favorite if args.command == "favorite" else service.toggle_public
        value = await toggle(args.record_id)
        print(f"{args.record_id}\t{args.command}={'unknown' if value is None else str(value).lower()}")
    except RemoteServiceError as exc:
      print(f"{args.command} failed: {exc}", file=sys.stderr)
      return EXIT_REMOTE_ERROR
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
  args = build_parser().parse_args(argv)
  settings = get_settings()
  initialize_logging(settings)

  if args.command == "submit":
    return asyncio.run(_run_submit(args, settings))
  if args.command == "list":
    return asyncio.run(_run_list(args, settings))
  return asyncio.run(_run_service(args, settings))


if __name__ == "__main__":
  raise SystemExit(main())
