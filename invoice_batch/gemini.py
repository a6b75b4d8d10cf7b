"""
Structured invoice extraction with the Gemini vision API.

Each call sends one rendered page plus a natural-language instruction and
asks for JSON conforming to a declared response schema. Failures of any kind
(provider errors, empty text, malformed or incomplete JSON) surface as
ExtractionError carrying a message fit to show the user.
"""

import json
from typing import Optional, Protocol, Union

from google import genai
from google.genai import types
from pydantic import ValidationError

from .config import GEMINI_API_KEY, GEMINI_MODEL, logger
from .exceptions import ConfigurationError, ExtractionError
from .schemas import BasicInvoiceData, DetailedInvoiceData, InvoiceData


# ============================================================================
# Response Schemas
# ============================================================================

BASIC_RESPONSE_SCHEMA: dict = {
    "type": "OBJECT",
    "properties": {
        "vendor": {"type": "STRING", "description": "Full name or legal name of the service provider."},
        "invoice_number": {"type": "STRING", "description": "The invoice number."},
        "issue_date": {"type": "STRING", "description": "The issue date in YYYY-MM-DD format."},
        "net_amount": {"type": "NUMBER", "description": "The net amount of the invoice, as a number."},
    },
    "required": ["vendor", "invoice_number", "issue_date", "net_amount"],
}

DETAILED_RESPONSE_SCHEMA: dict = {
    "type": "OBJECT",
    "properties": {
        "invoice_number": {"type": "STRING", "description": "The invoice number."},
        "issue_date": {"type": "STRING", "description": "The issue date."},
        "vendor_tax_id": {"type": "STRING", "description": "Service provider CNPJ (digits only or formatted)."},
        "vendor_legal_name": {"type": "STRING", "description": "Service provider legal name."},
        "customer_tax_id": {"type": "STRING", "description": "Service taker CNPJ."},
        "customer_legal_name": {"type": "STRING", "description": "Service taker legal name."},
        "place_of_service": {"type": "STRING", "description": "Where the service was provided (city/state)."},
        "place_of_tax_incidence": {"type": "STRING", "description": "Where the ISSQN service tax is due."},
        "service_code": {"type": "STRING", "description": "Code of the service provided."},
        "gross_total": {"type": "NUMBER", "description": "Gross total of the invoice."},
        "service_tax_rate": {"type": "NUMBER", "description": "ISSQN rate as a percentage (e.g. 5.0)."},
        "social_security_withholding": {"type": "NUMBER", "description": "INSS withheld or calculated."},
        "tax_withheld": {"type": "NUMBER", "description": "ISS withheld."},
    },
    "required": [
        "invoice_number", "issue_date",
        "vendor_tax_id", "vendor_legal_name", "customer_tax_id", "customer_legal_name",
        "place_of_service", "place_of_tax_incidence", "service_code", "gross_total",
        "service_tax_rate", "social_security_withholding", "tax_withheld",
    ],
}

DETAILED_INSTRUCTION = """Analyze the invoice and extract EXACTLY the following fields:
1. Invoice number
2. Issue date
3. Service provider CNPJ
4. Service provider legal name
5. Service taker CNPJ
6. Service taker legal name
7. Place of service
8. Place of ISSQN incidence
9. Service code
10. Invoice gross total
11. ISSQN rate
12. INSS
13. ISS withheld

If a monetary or percentage value is not explicit, use 0. If a text is not found, use an empty string."""


def build_basic_instruction(user_prompt: str) -> str:
    return (
        "Based on the invoice image, extract the following information. "
        f"Additional instructions: {user_prompt}"
    )


# ============================================================================
# Error Messages
# ============================================================================

def friendly_error_message(error: BaseException) -> str:
    """Rewrite a provider or parsing error into a message for the user."""
    message = str(error)
    if "429" in message or "RESOURCE_EXHAUSTED" in message:
        return "API request limit reached. Please wait a moment and try again."
    if isinstance(error, (json.JSONDecodeError, ValidationError)) or "json" in message.lower():
        return "The AI returned an unexpected format. Please check the layout prompt or try again."
    return f"AI communication failure: {message}"


# ============================================================================
# Extractors
# ============================================================================

class InvoiceExtractor(Protocol):
    """Anything that turns a page image plus an instruction into invoice data."""

    def extract(self, image: bytes, instruction: str, detailed: bool = False) -> InvoiceData:
        ...


class GeminiExtractor:
    """
    InvoiceExtractor backed by the google-genai SDK.

    Args:
        client: A configured genai.Client
        model: Model name used for every call
    """

    def __init__(self, client: genai.Client, model: str = GEMINI_MODEL):
        self.client = client
        self.model = model

    @classmethod
    def from_env(cls, api_key: Optional[str] = GEMINI_API_KEY) -> "GeminiExtractor":
        """
        Build an extractor from the configured credential.

        Raises:
            ConfigurationError: If no API key is configured
        """
        if not api_key:
            raise ConfigurationError("GEMINI_API_KEY environment variable not set")
        return cls(genai.Client(api_key=api_key))

    def _generate(self, image: bytes, text: str, schema: dict) -> str:
        response = self.client.models.generate_content(
            model=self.model,
            contents=[
                types.Part.from_bytes(data=image, mime_type="image/png"),
                text,
            ],
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=schema,
            ),
        )
        json_text = response.text
        if not json_text or not json_text.strip():
            raise ExtractionError("The AI returned an empty or invalid text response.")
        return json_text.strip()

    def extract(self, image: bytes, instruction: str, detailed: bool = False) -> InvoiceData:
        """
        Extract invoice fields from one rendered page.

        Args:
            image: PNG bytes of the page
            instruction: The active layout's prompt (ignored for detailed extraction)
            detailed: Use the thirteen-field detailed schema instead of the basic one

        Raises:
            ExtractionError: On any provider failure or unusable response
        """
        model_cls: type[Union[BasicInvoiceData, DetailedInvoiceData]]
        if detailed:
            text, schema, model_cls = DETAILED_INSTRUCTION, DETAILED_RESPONSE_SCHEMA, DetailedInvoiceData
        else:
            text, schema, model_cls = build_basic_instruction(instruction), BASIC_RESPONSE_SCHEMA, BasicInvoiceData

        try:
            json_text = self._generate(image, text, schema)
            return model_cls.model_validate_json(json_text)
        except ExtractionError:
            raise
        except ValidationError as e:
            logger.warning(f"Incomplete AI response: {e.error_count()} validation error(s)")
            raise ExtractionError("The AI response is incomplete or badly formatted.") from e
        except Exception as e:
            logger.error(f"Gemini API error: {e}")
            raise ExtractionError(friendly_error_message(e)) from e
