from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr, model_validator

GenerationMode = Literal["text_to_video", "first_frame", "last_frame", "first_last_frame"]


class GenerationRequest(BaseModel):
  """Payload for submitting a video generation job."""

  model_id: StrictInt | StrictStr | None = Field(default=None, description="Model to generate with; the server default is used when omitted.")
  prompt: StrictStr = Field(min_length=1, max_length=4000, description="Text prompt describing the video.", examples=["A paper boat drifting down a rainy street"])
  negative_prompt: StrictStr | None = Field(default=None, max_length=2000)
  generation_mode: GenerationMode = Field(default="text_to_video")
  first_frame_image: StrictStr | None = Field(default=None, min_length=1, description="URL of the first frame image.")
  last_frame_image: StrictStr | None = Field(default=None, min_length=1, description="URL of the last frame image.")
  resolution: StrictStr | None = Field(default=None, examples=["720p", "1080p"])
  ratio: StrictStr | None = Field(default=None, examples=["16:9", "9:16"])
  duration: StrictInt | None = Field(default=None, ge=1, le=60, description="Clip length in seconds.")
  fps: StrictInt | None = Field(default=None, ge=1, le=60)
  seed: StrictInt | None = None
  watermark: StrictBool | None = None
  camera_fixed: StrictBool | None = None
  return_last_frame: StrictBool | None = None
  model_config = ConfigDict(extra="forbid")

  @model_validator(mode="after")
  def _check_frames_for_mode(self) -> GenerationRequest:
    """Frame-conditioned modes need their reference images."""
    if self.generation_mode in ("first_frame", "first_last_frame") and not self.first_frame_image:
      raise ValueError(f"first_frame_image is required for generation_mode={self.generation_mode}.")
    if self.generation_mode in ("last_frame", "first_last_frame") and not self.last_frame_image:
      raise ValueError(f"last_frame_image is required for generation_mode={self.generation_mode}.")
    return self

  def to_payload(self) -> dict[str, Any]:
    """Return the JSON body sent to the submit endpoint."""
    return self.model_dump(exclude_none=True)
