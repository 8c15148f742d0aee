# crm_app/services/field_service.py
"""
Custom field normalization - coerce raw imported values by field definition
"""

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from crm_app.importer.errors import BatchValidationError
from crm_app.models import Field, FieldType, db

_TRUE_TOKENS = {"1", "true", "yes", "y", "on"}
_FALSE_TOKENS = {"0", "false", "no", "n", "off"}


def _coerce_field_id(raw: Any) -> Optional[int]:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return date.fromisoformat(text)


def _clean_value(field: Field, value: Any) -> Dict[str, Any]:
    """Return the stored representation of ``value`` or raise on a type mismatch"""
    entry: Dict[str, Any] = {"field_id": field.id, "value": value, "string_value": str(value).strip()}

    if field.type == FieldType.NUMBER:
        try:
            number = float(str(value).replace(",", "").strip())
        except ValueError:
            raise BatchValidationError(f'Invalid number "{value}" for custom field "{field.text}"') from None
        entry["value"] = number
        entry["number_value"] = number
    elif field.type == FieldType.DATE:
        try:
            parsed = _parse_date(value)
        except ValueError:
            raise BatchValidationError(f'Invalid date "{value}" for custom field "{field.text}"') from None
        entry["value"] = parsed.isoformat()
        entry["date_value"] = parsed.isoformat()
    elif field.type == FieldType.BOOLEAN:
        token = str(value).strip().lower()
        if token not in _TRUE_TOKENS | _FALSE_TOKENS:
            raise BatchValidationError(f'Invalid boolean "{value}" for custom field "{field.text}"')
        entry["value"] = token in _TRUE_TOKENS
    elif field.type == FieldType.EMAIL:
        if "@" not in entry["string_value"]:
            raise BatchValidationError(f'Invalid email "{value}" for custom field "{field.text}"')
    elif field.options and entry["string_value"] not in field.options:
        raise BatchValidationError(f'"{value}" is not an option of custom field "{field.text}"')

    return entry


def prepare_custom_fields_data(entries: Optional[Iterable[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """
    Normalize raw ``{"field_id", "value"}`` entries into typed custom field data.

    Entries pointing at unknown fields and entries with empty values are
    dropped. A value that does not fit its field type raises
    ``BatchValidationError``, which fails the whole batch.
    """
    entries = list(entries or [])
    if not entries:
        return []

    field_ids = {_coerce_field_id(entry.get("field_id")) for entry in entries}
    field_ids.discard(None)
    if not field_ids:
        return []

    fields = {field.id: field for field in db.session.query(Field).filter(Field.id.in_(field_ids))}

    prepared = []
    for entry in entries:
        field = fields.get(_coerce_field_id(entry.get("field_id")))
        if field is None or _is_empty(entry.get("value")):
            continue
        prepared.append(_clean_value(field, entry["value"]))
    return prepared
