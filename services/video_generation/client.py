"""
Generation Client - submits Kling jobs to the Replicate predictions API.

Owns the remote side of a job: submission, single status queries and the
optional cancel request. Polling and downloading live in their own modules.

Usage:
    async with GenerationClient() as client:
        handle = await client.submit(request, api_key)
        status = await client.get_status(handle, api_key)
"""

import base64
import logging
import mimetypes
import os
from pathlib import Path
from typing import Any, Optional

import aiofiles
import httpx
import pydantic
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from core.config import Config, get_config

from .errors import NetworkError, SubmissionError, ValidationError
from .models import (
    ALLOWED_DURATIONS,
    ErrorResponse,
    GenerationMode,
    GenerationRequest,
    ImageSource,
    JobHandle,
    JobStatus,
    PredictionResponse,
)

logger = logging.getLogger(__name__)


def validate_request(request: GenerationRequest, credential: Optional[str]):
    """
    Check a request locally. Raises ValidationError; never touches the network.

    Image references are only checked for image-to-video; text-to-video
    ignores them entirely.
    """
    if not credential or not credential.strip():
        raise ValidationError("API key is not set")

    if not isinstance(request.mode, GenerationMode):
        raise ValidationError(f"Unknown generation mode: {request.mode!r}")

    if not request.prompt or not request.prompt.strip():
        raise ValidationError("Prompt must not be empty")

    if request.duration_seconds not in ALLOWED_DURATIONS:
        allowed = ", ".join(str(d) for d in ALLOWED_DURATIONS)
        raise ValidationError(
            f"Duration must be one of {allowed} seconds, got {request.duration_seconds}"
        )

    if request.mode != GenerationMode.IMAGE_TO_VIDEO:
        return

    if not _has_image(request.start_image):
        if _has_image(request.end_image):
            raise ValidationError("An end frame requires a start frame")
        raise ValidationError("Image-to-video requires a start frame")

    for label, source in (("Start", request.start_image), ("End", request.end_image)):
        if isinstance(source, (str, Path)) and str(source).strip():
            if not os.path.isfile(source):
                raise ValidationError(f"{label} frame not found: {source}")


def _has_image(source: Optional[ImageSource]) -> bool:
    if source is None:
        return False
    if isinstance(source, bytes):
        return len(source) > 0
    return bool(str(source).strip())


def _guess_image_mime(data: bytes, name: Optional[str] = None) -> str:
    if data.startswith(b"\x89PNG"):
        return "image/png"
    if data.startswith(b"\xff\xd8"):
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if name:
        guessed, _ = mimetypes.guess_type(name)
        if guessed and guessed.startswith("image/"):
            return guessed
    return "application/octet-stream"


async def encode_image(source: ImageSource) -> str:
    """Inline an image as a base64 data URI."""
    if isinstance(source, bytes):
        data, name = source, None
    else:
        name = str(source)
        async with aiofiles.open(name, "rb") as f:
            data = await f.read()

    mime = _guess_image_mime(data, name)
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime};base64,{encoded}"


def _error_message(response: httpx.Response) -> str:
    """Pull the human-readable message out of an error response."""
    try:
        data = response.json()
    except ValueError:
        data = None

    if isinstance(data, dict):
        try:
            message = ErrorResponse.model_validate(data).best_message()
        except pydantic.ValidationError:
            message = None
        if message:
            return message

    text = response.text.strip()
    return text or f"HTTP {response.status_code}"


class GenerationClient:
    """
    Client for the remote generation service.

    The credential is passed into every call; the client keeps no token
    state of its own.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or get_config()
        self._http_client = http_client
        self._owns_client = http_client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.api.request_timeout)
        return self._http_client

    async def close(self):
        """Close the HTTP client if we created it."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "GenerationClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _headers(self, credential: str) -> dict:
        return {
            "Authorization": f"Bearer {credential.strip()}",
            "Content-Type": "application/json",
        }

    def _model_for(self, mode: GenerationMode) -> str:
        if mode == GenerationMode.IMAGE_TO_VIDEO:
            return self.config.api.image_to_video_model
        return self.config.api.text_to_video_model

    async def build_payload(self, request: GenerationRequest) -> dict[str, Any]:
        """Build the prediction input for a validated request."""
        input_params: dict[str, Any] = {
            "prompt": request.prompt.strip(),
            "duration": request.duration_seconds,
        }

        if request.negative_prompt and request.negative_prompt.strip():
            input_params["negative_prompt"] = request.negative_prompt.strip()

        if request.mode == GenerationMode.IMAGE_TO_VIDEO:
            try:
                input_params["start_image"] = await encode_image(request.start_image)
                if _has_image(request.end_image):
                    input_params["end_image"] = await encode_image(request.end_image)
            except OSError as e:
                raise ValidationError(f"Could not read frame image: {e}")

        return {"input": input_params}

    async def submit(self, request: GenerationRequest, credential: str) -> JobHandle:
        """
        Submit a generation job.

        Returns:
            JobHandle for the created job

        Raises:
            ValidationError: request is invalid (no network call was made)
            SubmissionError: the service rejected the job
            NetworkError: the service could not be reached
        """
        validate_request(request, credential)

        payload = await self.build_payload(request)
        model = self._model_for(request.mode)
        url = f"{self.config.api.api_base}/models/{model}/predictions"

        logger.info(
            f"Submitting {request.mode.value} job: model={model}, "
            f"duration={request.duration_seconds}s, prompt={request.prompt[:50]}..."
        )

        client = await self._get_client()
        try:
            response = await client.post(url, json=payload, headers=self._headers(credential))
        except httpx.TimeoutException as e:
            raise NetworkError(f"Submission timed out: {type(e).__name__}")
        except httpx.RequestError as e:
            raise NetworkError(f"Submission request failed: {type(e).__name__}: {e}")

        if response.status_code not in (200, 201, 202):
            message = _error_message(response)
            logger.error(f"Submission rejected ({response.status_code}): {message}")
            raise SubmissionError(message, status_code=response.status_code)

        try:
            data = response.json()
        except ValueError:
            raise SubmissionError("Service returned a response that is not JSON")

        if not isinstance(data, dict):
            raise SubmissionError("Service returned an unexpected response")

        try:
            prediction = PredictionResponse.model_validate(data)
        except pydantic.ValidationError as e:
            raise SubmissionError(f"Service returned a malformed job: {e.error_count()} invalid field(s)")

        if not prediction.id:
            raise SubmissionError("No job id in service response")

        logger.info(f"Job created: {prediction.id}")
        return JobHandle(remote_id=prediction.id)

    async def get_status(self, handle: JobHandle, credential: str) -> JobStatus:
        """
        Query the current status of a job once.

        Raises:
            NetworkError: transport failure or non-success response
        """
        url = f"{self.config.api.api_base}/predictions/{handle.remote_id}"
        client = await self._get_client()

        try:
            response = await client.get(url, headers=self._headers(credential))
        except httpx.TimeoutException as e:
            raise NetworkError(f"Status query timed out: {type(e).__name__}")
        except httpx.RequestError as e:
            raise NetworkError(f"Status query failed: {type(e).__name__}: {e}")

        if response.status_code != 200:
            raise NetworkError(
                f"Status query returned HTTP {response.status_code}: {_error_message(response)}"
            )

        try:
            data = response.json()
        except ValueError:
            raise NetworkError("Status query returned a response that is not JSON")

        if not isinstance(data, dict):
            raise NetworkError("Status query returned an unexpected response")

        try:
            prediction = PredictionResponse.model_validate(data)
        except pydantic.ValidationError as e:
            raise NetworkError(f"Status query returned a malformed job: {e.error_count()} invalid field(s)")

        return prediction.to_status()

    @retry(
        retry=retry_if_exception_type(NetworkError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def cancel(self, handle: JobHandle, credential: str):
        """Ask the service to cancel a job."""
        url = f"{self.config.api.api_base}/predictions/{handle.remote_id}/cancel"
        client = await self._get_client()

        try:
            response = await client.post(url, headers=self._headers(credential))
        except httpx.RequestError as e:
            raise NetworkError(f"Cancel request failed: {type(e).__name__}: {e}")

        if response.status_code >= 500:
            raise NetworkError(f"Cancel request returned HTTP {response.status_code}")

        if response.status_code not in (200, 201, 202):
            logger.warning(
                f"Cancel for job {handle.remote_id} rejected: {_error_message(response)}"
            )
            return

        logger.info(f"Cancel requested for job {handle.remote_id}")
