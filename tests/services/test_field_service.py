import pytest

from crm_app.importer.errors import BatchValidationError
from crm_app.models import Field, FieldType, db
from crm_app.services.field_service import prepare_custom_fields_data


def _field(field_type, **kwargs):
    field = Field(content_type="customer", text=field_type.value.title(), type=field_type, **kwargs)
    db.session.add(field)
    db.session.commit()
    return field


def test_values_are_coerced_by_field_type():
    number = _field(FieldType.NUMBER)
    when = _field(FieldType.DATE)
    flag = _field(FieldType.BOOLEAN)
    text = _field(FieldType.TEXT)

    prepared = prepare_custom_fields_data(
        [
            {"field_id": str(number.id), "value": " 1,250.5 "},
            {"field_id": when.id, "value": "2024-03-01T10:00:00"},
            {"field_id": flag.id, "value": "Yes"},
            {"field_id": text.id, "value": " hello "},
        ]
    )

    assert prepared[0]["number_value"] == 1250.5
    assert prepared[1]["date_value"] == "2024-03-01"
    assert prepared[2]["value"] is True
    assert prepared[3]["string_value"] == "hello"


def test_unknown_fields_and_empty_values_are_dropped():
    text = _field(FieldType.TEXT)

    prepared = prepare_custom_fields_data(
        [
            {"field_id": "999", "value": "x"},
            {"field_id": "not-a-number", "value": "x"},
            {"field_id": text.id, "value": "   "},
        ]
    )

    assert prepared == []
    assert prepare_custom_fields_data(None) == []


@pytest.mark.parametrize(
    "field_type, value",
    [
        (FieldType.NUMBER, "lots"),
        (FieldType.DATE, "yesterday"),
        (FieldType.BOOLEAN, "maybe"),
        (FieldType.EMAIL, "not-an-email"),
    ],
)
def test_type_mismatch_rejects_batch(field_type, value):
    field = _field(field_type)

    with pytest.raises(BatchValidationError, match=field.text):
        prepare_custom_fields_data([{"field_id": field.id, "value": value}])


def test_option_fields_require_a_known_option():
    field = _field(FieldType.TEXT, options=["gold", "silver"])

    assert prepare_custom_fields_data([{"field_id": field.id, "value": "gold"}])[0]["value"] == "gold"
    with pytest.raises(BatchValidationError, match="bronze"):
        prepare_custom_fields_data([{"field_id": field.id, "value": "bronze"}])
