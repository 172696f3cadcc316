import re
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ValidationError

from memrag.domain.exceptions import StructuredOutputError
from memrag.domain.models.conversation_state import TicketFields, UserDetails

REQUIRED_FIELDS = ("title", "description", "user_details.name", "user_details.email")

_CAMEL_CASE_KEYS = {
    "userDetails": "user_details",
    "impactDetails": "impact_details",
    "technicalDetails": "technical_details",
}

_EMAIL = re.compile(r"[\w.+-]+@[\w-]+(?:\.[\w-]+)+")
_NAME_PATTERNS = [
    re.compile(r"(?i:\bname is )([A-Z][a-zA-Z'-]+(?: [A-Z][a-zA-Z'-]+)?)"),
    re.compile(r"(?i:\b(?:named|called) )([A-Z][a-zA-Z'-]+(?: [A-Z][a-zA-Z'-]+)?)"),
]
_DEPARTMENT_PATTERNS = [
    re.compile(
        r"(?i:\b(?:works in|works for|member of|part of) (?:the )?)"
        r"([A-Z][\w&/-]*(?: [A-Z][\w&/-]*)*) (?i:department|dept|team)\b"
    ),
    re.compile(r"(?i:\bdepartment(?: is|:) )([\w&/-]+(?: [\w&/-]+)*?)(?=[,.;]|$)"),
]
_LOCATION_PATTERNS = [
    re.compile(
        r"(?i:\b(?:located in|based in|lives in|works from|location is) (?:the )?)"
        r"([A-Z][\w'-]*(?: [A-Z][\w'-]*)*)"
    ),
]


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, BaseModel):
        return all(is_empty(getattr(value, name)) for name in type(value).model_fields)
    return False


def _merge_model(existing: BaseModel, incoming: BaseModel) -> BaseModel:
    merged: Dict[str, Any] = {}
    for name in type(existing).model_fields:
        old = getattr(existing, name)
        new = getattr(incoming, name)
        if isinstance(old, BaseModel) and isinstance(new, BaseModel):
            merged[name] = _merge_model(old, new)
        elif is_empty(new):
            merged[name] = old
        else:
            merged[name] = new
    return type(existing)(**merged)


def merge_ticket_fields(existing: Optional[TicketFields], incoming: Optional[TicketFields]) -> TicketFields:
    """Fold a new extraction into the known fields.

    Populated values are never replaced by empty ones; non-empty new values
    fill gaps or correct old ones.
    """

    base = existing or TicketFields()
    if incoming is None:
        return base.model_copy(deep=True)
    return _merge_model(base, incoming)


def _scalar_text(value: Any) -> Optional[str]:
    # Lists, objects and booleans are not field values
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return None
    return value if isinstance(value, str) else str(value)


def parse_ticket_extraction(data: Any) -> TicketFields:
    """Validate a model-produced extraction against the ticket schema"""

    if not isinstance(data, dict):
        raise StructuredOutputError("Ticket extraction must be a JSON object")

    data = {_CAMEL_CASE_KEYS.get(key, key): value for key, value in data.items()}
    cleaned = {key: value for key, value in data.items() if key in TicketFields.model_fields}
    user_details = cleaned.get("user_details")
    if user_details is not None and not isinstance(user_details, dict):
        cleaned.pop("user_details")

    for key, value in list(cleaned.items()):
        if key == "user_details":
            continue
        text = _scalar_text(value)
        if text is None:
            cleaned.pop(key)
        else:
            cleaned[key] = text
    if isinstance(cleaned.get("user_details"), dict):
        cleaned["user_details"] = {
            key: _scalar_text(value) for key, value in cleaned["user_details"].items()
            if key in UserDetails.model_fields and _scalar_text(value) is not None
        }

    try:
        return TicketFields.model_validate(cleaned)
    except ValidationError as e:
        raise StructuredOutputError(str(e)) from e


def missing_required_fields(fields: Optional[TicketFields]) -> List[str]:
    fields = fields or TicketFields()
    missing = []
    for path in REQUIRED_FIELDS:
        value: Any = fields
        for part in path.split("."):
            value = getattr(value, part)
        if is_empty(value):
            missing.append(path)
    return missing


def _first_match(patterns: List[re.Pattern], texts: List[str]) -> Optional[str]:
    for text in texts:
        for pattern in patterns:
            match = pattern.search(text)
            if match:
                return match.group(1 if pattern.groups else 0).strip()
    return None


def extract_user_details(texts: Iterable[str]) -> UserDetails:
    """Pick contact details out of remembered facts"""

    texts = [text for text in texts if text]
    return UserDetails(
        name=_first_match(_NAME_PATTERNS, texts),
        email=_first_match([_EMAIL], texts),
        department=_first_match(_DEPARTMENT_PATTERNS, texts),
        location=_first_match(_LOCATION_PATTERNS, texts),
    )


def fill_missing_user_details(existing: UserDetails, found: UserDetails) -> UserDetails:
    """Known values win; ``found`` only fills gaps"""

    return UserDetails(**{
        name: getattr(existing, name) if not is_empty(getattr(existing, name)) else getattr(found, name)
        for name in UserDetails.model_fields
    })


def summarize_ticket_fields(fields: Optional[TicketFields]) -> str:
    fields = fields or TicketFields()
    lines = []
    for name in TicketFields.model_fields:
        if name == "user_details":
            continue
        value = getattr(fields, name)
        if not is_empty(value):
            lines.append(f"- {name}: {value}")
    for name in UserDetails.model_fields:
        value = getattr(fields.user_details, name)
        if not is_empty(value):
            lines.append(f"- user {name}: {value}")
    missing = missing_required_fields(fields)
    if missing:
        lines.append(f"- still missing: {', '.join(missing)}")
    return "\n".join(lines)
