"""Classifier backed by a local Ollama server.

The model is asked for a single JSON object; the reply is validated into a
``Classification``. Transport errors and replies that do not validate are
both reported as ``ClassificationFailure`` so the stage can be retried.
"""

import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from ocrstage.errors import ClassificationFailure
from ocrstage.models import Classification

logger = logging.getLogger(__name__)

# Leave room for the instructions in the model context
MAX_TEXT_CHARS = 24_000

PROMPT_TEMPLATE = """You are given the OCR text of a scanned document.
Reply with one JSON object and nothing else, using exactly these keys:
  "summary": one or two sentences describing the document,
  "classification": the document type (e.g. Invoice, Receipt, Lab Report),
  "category": a broad category (e.g. financial, medical, legal, personal),
  "relevantDates": list of objects {{"date": "YYYY-MM-DD", "description": "..."}},
  "pagesCount": number of pages the text appears to span,
  "contact": list of objects {{"name": "...", "phone": "...", "email": "...", "address": "..."}}

Document text:
\"\"\"
{text}
\"\"\"
"""


class OllamaClassifier:
    """Summarize and classify document text with an Ollama model."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        model: str = "llama3.1",
        prompt_template: str = PROMPT_TEMPLATE,
        options: Optional[dict] = None,
    ):
        """Initialize the classifier.

        Args:
            client: HTTP client whose ``base_url`` points at the Ollama host.
            model: Model tag to run.
            prompt_template: Prompt with a ``{text}`` placeholder.
            options: Extra Ollama generation options.
        """
        self.client = client
        self.model = model
        self.prompt_template = prompt_template
        self.options = options or {"temperature": 0}

    def build_prompt(self, text: str) -> str:
        return self.prompt_template.format(text=text[:MAX_TEXT_CHARS])

    async def classify(self, text: str) -> Classification:
        """Classify document text.

        Raises:
            ClassificationFailure: Request failed or the reply is not a valid
                classification object.
        """
        payload = {
            "model": self.model,
            "prompt": self.build_prompt(text),
            "format": "json",
            "stream": False,
            "options": self.options,
        }

        try:
            response = await self.client.post("/api/generate", json=payload)
            response.raise_for_status()
            reply = response.json()["response"]
        except httpx.HTTPError as e:
            raise ClassificationFailure(f"Classifier request failed: {e}") from e
        except (ValueError, KeyError, TypeError) as e:
            raise ClassificationFailure(f"Unexpected classifier response: {e}") from e

        try:
            return Classification.model_validate_json(reply)
        except ValidationError as e:
            logger.warning("Classifier returned unusable output: %.200s", reply)
            raise ClassificationFailure(f"Malformed classification: {e}") from e
