"""
Prompt construction and reply handling for statement/transaction extraction.

Everything here is pure: the network call itself lives in UploadRelay.
"""

import json
import re
from typing import Any, Dict, Optional, Tuple

from .errors import ExtractionParseError, UnexpectedProviderResponse
from .models import UploadType

STATEMENT_FIELDS: Tuple[str, ...] = (
    "clientName",
    "bank",
    "cardType",
    "cardNumber",
    "currency",
    "statementPeriodStart",
    "statementPeriodEnd",
    "statementDate",
    "dueDate",
    "dueAmount",
    "outstandingBal",
)

TRANSACTION_FIELDS: Tuple[str, ...] = (
    "date",
    "bank",
    "cardType",
    "cardNumber",
    "currency",
    "cashOutAmount",
    "installmentPlan",
    "point",
    "category",
    "transactionId",
)

AMOUNT_FIELDS = frozenset({"dueAmount", "outstandingBal", "cashOutAmount", "point"})

STATEMENT_PROMPT = """Analyze this credit card statement and extract the following information:

1. clientName: The cardholder name printed on the statement
2. bank: The issuing bank name
3. cardType: The card brand or product (e.g. Visa Platinum, Mastercard World)
4. cardNumber: ONLY the last 4 digits of the card number
5. currency: Currency code of the statement (MYR, USD, SGD, etc.)
6. statementPeriodStart: Start of the statement period in YYYY-MM-DD format
7. statementPeriodEnd: End of the statement period in YYYY-MM-DD format
8. statementDate: Statement date in YYYY-MM-DD format
9. dueDate: Payment due date in YYYY-MM-DD format
10. dueAmount: Minimum payment due as a number
11. outstandingBal: Total outstanding balance as a number

Important:
- If a field is not found, use null
- Ensure amounts are numbers, not strings
- Use YYYY-MM-DD format for dates

Respond ONLY with valid JSON in this exact format:
{
    "clientName": "string or null",
    "bank": "string or null",
    "cardType": "string or null",
    "cardNumber": "string or null",
    "currency": "string or null",
    "statementPeriodStart": "YYYY-MM-DD or null",
    "statementPeriodEnd": "YYYY-MM-DD or null",
    "statementDate": "YYYY-MM-DD or null",
    "dueDate": "YYYY-MM-DD or null",
    "dueAmount": number or null,
    "outstandingBal": number or null
}"""

TRANSACTION_PROMPT = """Analyze this credit card transaction receipt and extract the following information:

1. date: Transaction date in YYYY-MM-DD format
2. bank: The issuing bank name
3. cardType: The card brand or product (e.g. Visa Platinum, Mastercard World)
4. cardNumber: The card number exactly as printed on the receipt (masked digits included)
5. currency: Currency code of the transaction (MYR, USD, SGD, etc.)
6. cashOutAmount: Amount charged as a number
7. installmentPlan: Installment plan description, if the purchase is on installments
8. point: Reward points earned as a number
9. category: Spending category (e.g. Dining, Travel, Groceries, Fuel)
10. transactionId: Transaction reference, approval code or receipt number

Important:
- If a field is not found, use null
- Ensure amounts are numbers, not strings
- Use YYYY-MM-DD format for dates

Respond ONLY with valid JSON in this exact format:
{
    "date": "YYYY-MM-DD or null",
    "bank": "string or null",
    "cardType": "string or null",
    "cardNumber": "string or null",
    "currency": "string or null",
    "cashOutAmount": number or null,
    "installmentPlan": "string or null",
    "point": number or null,
    "category": "string or null",
    "transactionId": "string or null"
}"""

_FENCE_OPEN = re.compile(r"^```[A-Za-z]*[ \t]*\r?\n?")
_FENCE_CLOSE = re.compile(r"\r?\n?```$")
# Optional currency prefix, then one number with optional thousands separators
_AMOUNT = re.compile(r"(?:[A-Za-z]{1,3}\$?|[$\u00a3\u20ac\u00a5])?\s*(-?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?)")


def fields_for(upload_type: UploadType) -> Tuple[str, ...]:
    if upload_type is UploadType.STATEMENT:
        return STATEMENT_FIELDS
    return TRANSACTION_FIELDS


def build_prompt(upload_type: UploadType) -> str:
    if upload_type is UploadType.STATEMENT:
        return STATEMENT_PROMPT
    return TRANSACTION_PROMPT


def read_message_text(response: Any) -> str:
    """
    Pull the reply text out of a chat completion.

    Raises:
        UnexpectedProviderResponse: if the reply has no choices, no message,
            a refusal, or no text content
    """
    choices = getattr(response, "choices", None)
    if not choices:
        raise UnexpectedProviderResponse("Unexpected provider response shape: no choices returned")

    message = getattr(choices[0], "message", None)
    if message is None:
        raise UnexpectedProviderResponse("Unexpected provider response shape: first choice has no message")

    content = getattr(message, "content", None)
    if isinstance(content, str) and content.strip():
        return content

    refusal = getattr(message, "refusal", None)
    if isinstance(refusal, str) and refusal:
        raise UnexpectedProviderResponse(f"Extraction model refused the request: {refusal}")

    finish_reason = getattr(choices[0], "finish_reason", None)
    raise UnexpectedProviderResponse(
        f"Unexpected provider response shape: message has no text content (finish_reason={finish_reason})"
    )


def strip_code_fence(text: str) -> str:
    """Remove a leading ```json (or bare ```) marker and a trailing ``` marker."""
    text = text.strip()
    text = _FENCE_OPEN.sub("", text, count=1)
    text = _FENCE_CLOSE.sub("", text, count=1)
    return text.strip()


def parse_model_reply(text: str) -> Dict[str, Any]:
    """
    Parse the model reply as a JSON object.

    Raises:
        ExtractionParseError: carrying the raw reply when it is not a JSON object
    """
    cleaned = strip_code_fence(text)
    try:
        result = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ExtractionParseError(
            f"Failed to parse extraction response as JSON ({e.msg}). Raw response: {text}",
            raw_text=text,
        ) from e

    if not isinstance(result, dict):
        raise ExtractionParseError(
            f"Expected a JSON object in extraction response. Raw response: {text}",
            raw_text=text,
        )
    return result


def normalize_amount(value: Any) -> Any:
    """
    Turn a string holding exactly one amount, such as "1,234.50" or "RM 80",
    into a number. Anything else (ranges, prose, other separators) is left as is.
    """
    if not isinstance(value, str):
        return value
    match = _AMOUNT.fullmatch(value.strip())
    if not match:
        return value
    cleaned = match.group(1).replace(",", "")
    number = float(cleaned)
    return int(number) if "." not in cleaned else number


def last_four_digits(value: Any) -> Any:
    if value is None:
        return None
    digits = re.sub(r"\D", "", str(value))
    if len(digits) >= 4:
        return digits[-4:]
    return value


def build_record(upload_type: UploadType, extracted: Dict[str, Any], client_name: Optional[str],
                 payment_by: Optional[str] = None, default_currency: str = "MYR") -> Dict[str, Any]:
    """
    Map extracted fields into the JSON payload sent to the destination webhook.

    Fields the model left out are sent as null. Currency falls back to
    ``default_currency``. The statement schema prefers the cardholder name read
    from the document over the submitted one; the transaction schema always
    uses the submitted name.
    """
    record: Dict[str, Any] = {"recordType": upload_type.value}

    for name in fields_for(upload_type):
        value = extracted.get(name)
        if name in AMOUNT_FIELDS:
            value = normalize_amount(value)
        elif name == "cardNumber" and upload_type is UploadType.STATEMENT:
            value = last_four_digits(value)
        record[name] = value

    record["currency"] = extracted.get("currency") or default_currency

    if upload_type is UploadType.STATEMENT:
        record["clientName"] = extracted.get("clientName") or client_name
    else:
        record["clientName"] = client_name

    if payment_by:
        record["paymentBy"] = payment_by

    return record
