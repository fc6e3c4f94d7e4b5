"""
Layer selection adapter.

The host bridge reports the selected timeline layer as JSON. A layer whose
source path is missing or empty does not count as a reference image.
"""

import json
from dataclasses import dataclass
from typing import Optional

from .errors import ValidationError
from .models import GenerationMode, GenerationRequest


@dataclass(frozen=True)
class LayerInfo:
    """A selected layer as reported by the host."""
    name: str
    source_path: Optional[str] = None

    @property
    def has_source(self) -> bool:
        return bool(self.source_path and self.source_path.strip())

    @property
    def file_name(self) -> str:
        if not self.has_source:
            return "Unknown File"
        return self.source_path.replace("\\", "/").rsplit("/", 1)[-1]


def parse_layer_info(payload: str) -> LayerInfo:
    """Parse the host's ``{"name", "sourcePath"}`` or ``{"error"}`` reply."""
    try:
        data = json.loads(payload)
    except (TypeError, json.JSONDecodeError):
        raise ValidationError("Could not read layer info from the host")

    if not isinstance(data, dict):
        raise ValidationError("Could not read layer info from the host")

    if data.get("error"):
        raise ValidationError(str(data["error"]))

    return LayerInfo(
        name=str(data.get("name") or ""),
        source_path=data.get("sourcePath") or None,
    )


def is_ready(mode: GenerationMode, start_layer: Optional[LayerInfo]) -> bool:
    """Whether the generate action should be enabled."""
    if mode == GenerationMode.IMAGE_TO_VIDEO:
        return start_layer is not None and start_layer.has_source
    return True


def build_request(
    mode: GenerationMode,
    prompt: str,
    duration_seconds: int = 5,
    negative_prompt: Optional[str] = None,
    start_layer: Optional[LayerInfo] = None,
    end_layer: Optional[LayerInfo] = None,
) -> GenerationRequest:
    """Turn the panel's inputs into a GenerationRequest."""
    prompt = (prompt or "").strip()
    if not prompt:
        raise ValidationError("Please enter a prompt")

    start_path = None
    end_path = None

    if mode == GenerationMode.IMAGE_TO_VIDEO:
        if not is_ready(mode, start_layer):
            raise ValidationError("No valid start frame set for image-to-video")
        start_path = start_layer.source_path
        if end_layer is not None and end_layer.has_source:
            end_path = end_layer.source_path

    return GenerationRequest(
        mode=mode,
        prompt=prompt,
        duration_seconds=duration_seconds,
        negative_prompt=(negative_prompt or "").strip() or None,
        start_image=start_path,
        end_image=end_path,
    )
