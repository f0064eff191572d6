import pytest

from taskwatch.cli import _default_model_id, _request_fields, build_parser, format_job, format_model
from taskwatch.core.exceptions import RemoteServiceError
from taskwatch.jobs.models import normalize_job
from taskwatch.services.contracts import VideoModel


def test_submit_arguments_become_request_fields():
  args = build_parser().parse_args(["submit", "--prompt", "a paper boat", "--model-id", "7", "--duration", "5", "--wait"])

  assert args.command == "submit"
  assert args.wait is True
  assert _request_fields(args) == {"prompt": "a paper boat", "model_id": 7, "duration": 5}


def test_non_numeric_model_id_kept_as_string():
  args = build_parser().parse_args(["submit", "--prompt", "x", "--model-id", "seedance-pro", "--ratio", "16:9"])

  assert _request_fields(args) == {"prompt": "x", "model_id": "seedance-pro", "ratio": "16:9"}


def test_list_rejects_unknown_status():
  with pytest.raises(SystemExit):
    build_parser().parse_args(["list", "--status", "exploded"])


def test_format_job_shows_result_or_error():
  done = normalize_job(job_id="J1", status="succeeded", result_refs=("v.mp4",), title="boat")
  failed = normalize_job(job_id="J2", status="failed", error_info="content policy")

  assert format_job(done) == "J1\tsucceeded\t100%\tboat\tv.mp4"
  assert format_job(failed) == "J2\tfailed\t0%\t\tcontent policy"


@pytest.mark.parametrize(
  ("argv", "command"),
  [(["models"], "models"), (["stats"], "stats"), (["gallery", "--page", "2", "--model-id", "3"], "gallery"), (["favorite", "42"], "favorite"), (["public", "42"], "public")],
)
def test_service_commands_parse(argv, command):
  args = build_parser().parse_args(argv)

  assert args.command == command


def test_toggle_commands_need_a_record_id():
  with pytest.raises(SystemExit):
    build_parser().parse_args(["favorite"])


def test_format_model_lists_resolutions():
  model = VideoModel(id="3", name="seedance-pro", display_name="Seedance Pro", provider="volcengine", resolutions=("720p", "1080p"))

  assert format_model(model) == "3\tSeedance Pro\tvolcengine\t720p,1080p"


@pytest.mark.anyio
async def test_first_offered_model_is_the_default(service):
  service.available_models = (VideoModel(id="7", name="fast"), VideoModel(id="9", name="slow"))

  assert await _default_model_id(service) == 7


@pytest.mark.anyio
async def test_no_default_model_when_listing_fails(service):
  class Unavailable:
    async def models(self):
      raise RemoteServiceError("models down")

  assert await _default_model_id(service) is None
  assert await _default_model_id(Unavailable()) is None
