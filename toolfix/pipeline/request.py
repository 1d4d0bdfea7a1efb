"""Diagnosis request model and input validation."""

import base64
import binascii
import os
from dataclasses import dataclass

from toolfix.core.errors import InvalidArgumentError

IMAGE_PLACEHOLDER = "(image-based request)"

_MAGIC_NUMBERS = [
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
]


def _sniff_mime(data: bytes) -> str:
    for magic, mime in _MAGIC_NUMBERS:
        if data.startswith(magic):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    # The mobile client uploads JPEG
    return "image/jpeg"


def decode_image(encoded: str | None) -> bytes | None:
    """Decode a base64 image, tolerating a ``data:...;base64,`` prefix.

    Raises:
        InvalidArgumentError: If the payload is not valid base64 or exceeds IMAGE_MAX_BYTES.
    """
    if not encoded or not encoded.strip():
        return None

    payload = encoded.strip()
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidArgumentError("base64Image is not valid base64.")

    max_bytes = int(os.environ.get("IMAGE_MAX_BYTES", str(10 * 1024 * 1024)))
    if len(data) > max_bytes:
        raise InvalidArgumentError(f"Image exceeds the {max_bytes} byte limit.")
    return data or None


@dataclass(frozen=True)
class DiagnosisRequest:
    """Input of one diagnosis run.

    Attributes:
        image: Raw image bytes, or None.
        text_description: Free-text description, possibly empty.
        text_only_mode: When True the image is ignored even if supplied.
        requester_id: Authenticated caller id, None for anonymous calls.
    """
    image: bytes | None = None
    text_description: str = ""
    text_only_mode: bool = False
    requester_id: str | None = None

    @classmethod
    def from_payload(
        cls,
        base64_image: str | None,
        text_description: str | None,
        text_only_mode: bool,
        requester_id: str | None,
    ) -> "DiagnosisRequest":
        return cls(
            image=decode_image(base64_image),
            text_description=text_description or "",
            text_only_mode=bool(text_only_mode),
            requester_id=requester_id,
        )

    @property
    def has_text(self) -> bool:
        return bool(self.text_description.strip())

    @property
    def uses_image(self) -> bool:
        return self.image is not None and not self.text_only_mode

    @property
    def image_mime(self) -> str:
        return _sniff_mime(self.image) if self.image else ""

    def image_data_url(self) -> str:
        encoded = base64.b64encode(self.image).decode("ascii")
        return f"data:{self.image_mime};base64,{encoded}"

    def seed_message(self) -> str:
        """First user message of the chat session."""
        return self.text_description if self.has_text else IMAGE_PLACEHOLDER

    def validate(self) -> None:
        """Reject requests with nothing to diagnose.

        Text-only mode tells the pipeline to leave the image out of the
        prompt. With blank text such a request would send the model an empty
        description, so it is refused here instead of failing upstream.

        Raises:
            InvalidArgumentError: If there is neither an image nor non-blank text.
                In text-only mode the image does not count.
        """
        if self.image is None and not self.has_text:
            raise InvalidArgumentError("At least an image or text description is required.")
        if self.text_only_mode and not self.has_text:
            raise InvalidArgumentError("Text-only mode requires a text description.")
