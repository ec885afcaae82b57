"""
Sheet extraction — turns a photo of a printed attendance sheet into rows.

Uses Gemini (google-genai) with a JSON response schema. The extractor only
reads: nothing is written to the directory until the user confirms the rows
and they go through reconciliation.

Usage:
    extractor = SheetExtractor()
    entries = extractor.extract(image_bytes, "image/jpeg")
"""

import json
import logging
from typing import Any

from google import genai
from google.genai import types

from roster import config
from roster.errors import ExtractionError, MissingCredentialsError
from roster.models import ExtractedEntry

logger = logging.getLogger(__name__)

SUPPORTED_MIME_TYPES = ("image/jpeg", "image/png", "image/webp", "image/heic", "image/heif")

SYSTEM_INSTRUCTION = """
You are an expert data entry assistant reading documents that mix printed and handwritten text.
Extract the list of attendees from a networking meeting sheet.

The sheet usually has these columns:
1. Row number
2. Member (name and company, often on two lines)
3. Specialty / sector
4. Contact / phone
5. "Referencias Deseadas" (desired references), where the HANDWRITTEN notes appear.

There may be a "Guests" / "Invitados" section. Those rows often say who invited
them (e.g. "Invitado por Juan").

Instructions:
1. Identify every row in the list.
2. Extract the name and company from the member column.
3. Extract the sector / specialty.
4. Extract the phone number.
5. Mark rows that belong to a GUEST. Guests rarely have reference requests but
   may have an "invited by" note.
6. Transcribe the handwritten note for each row. If a row has no handwriting,
   return an empty string. Ignore header and footer text.
""".strip()

USER_PROMPT = (
    "Extract the table data from this image. Focus on capturing the handwritten notes "
    "in the 'Referencias Deseadas' area for each person. Also identify if any rows are Guests."
)

RESPONSE_SCHEMA = types.Schema(
    type=types.Type.ARRAY,
    items=types.Schema(
        type=types.Type.OBJECT,
        properties={
            "rowNumber": types.Schema(type=types.Type.INTEGER),
            "name": types.Schema(type=types.Type.STRING),
            "company": types.Schema(type=types.Type.STRING),
            "sector": types.Schema(type=types.Type.STRING),
            "phone": types.Schema(type=types.Type.STRING),
            "handwrittenRequest": types.Schema(
                type=types.Type.STRING, description="The handwritten text found for this row"
            ),
            "isGuest": types.Schema(
                type=types.Type.BOOLEAN, description="True if this row is a guest or visitor"
            ),
            "invitedByName": types.Schema(
                type=types.Type.STRING,
                description="Name of the member who invited this guest, if visible",
            ),
        },
        required=["name", "sector", "handwrittenRequest"],
    ),
)


def parse_rows(text: str | None) -> list[ExtractedEntry]:
    """
    Parse the model's JSON answer into entries.

    Raises:
        ExtractionError: empty answer, invalid JSON, or not a list of rows
    """
    if not text or not text.strip():
        raise ExtractionError("No data extracted from the image")

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.error(f"Extraction returned invalid JSON: {e} (length={len(text)})")
        raise ExtractionError("Extraction returned invalid JSON") from e

    if not isinstance(data, list):
        raise ExtractionError(f"Expected a list of rows, got {type(data).__name__}")

    return [ExtractedEntry.from_dict(row) for row in data if isinstance(row, dict)]


class SheetExtractor:
    """Gemini-backed extractor. Pass `client` to reuse or replace the genai client."""

    def __init__(self, api_key: str | None = None, client: Any = None, settings: dict | None = None):
        self._api_key = api_key
        self._client = client
        self.settings = (settings or config.load_settings())["extraction"]

    def _get_client(self):
        if self._client is None:
            api_key = self._api_key or config.get_api_key()
            if not api_key:
                raise MissingCredentialsError(
                    "Gemini API key not configured. Set one of: "
                    + ", ".join(config.API_KEY_ENV_VARS)
                )
            self._client = genai.Client(api_key=api_key)
        return self._client

    def extract(self, image: bytes, mime_type: str = "image/jpeg") -> list[ExtractedEntry]:
        """
        Extract attendee rows from one sheet image.

        Raises:
            MissingCredentialsError: no API key (raised before any network call)
            ExtractionError: empty input, service failure or unusable answer
        """
        if not image:
            raise ExtractionError("Image is empty")
        if mime_type not in SUPPORTED_MIME_TYPES:
            logger.warning(f"Unusual image type {mime_type!r}; sending anyway")

        client = self._get_client()
        model = self.settings["model"]

        try:
            response = client.models.generate_content(
                model=model,
                contents=[
                    types.Part.from_bytes(data=image, mime_type=mime_type),
                    self.settings.get("prompt") or USER_PROMPT,
                ],
                config=types.GenerateContentConfig(
                    system_instruction=SYSTEM_INSTRUCTION,
                    response_mime_type="application/json",
                    response_schema=RESPONSE_SCHEMA,
                    temperature=float(self.settings["temperature"]),
                ),
            )
        except Exception as e:
            logger.error(f"Gemini extraction failed ({model}): {e}")
            raise ExtractionError(f"Extraction service failed: {e}") from e

        entries = parse_rows(response.text)
        logger.info(
            f"Extracted {len(entries)} rows ({sum(1 for e in entries if e.is_guest)} guests) "
            f"with {model}"
        )
        return entries
