# crm_app/services/scoring.py
"""
Derived values computed for records on write: profile score, search text,
customer state, and pronoun normalization.
"""

from typing import Any, Iterable, Mapping, NamedTuple, Optional

from crm_app.models import CustomerState, Pronoun

_PRONOUN_TOKENS = {
    Pronoun.MALE: {"male", "man", "m", "he", "him", "he/him", "mr", "mr."},
    Pronoun.FEMALE: {"female", "woman", "f", "she", "her", "she/her", "mrs", "mrs.", "ms", "ms."},
    Pronoun.NON_BINARY: {"non-binary", "non_binary", "nonbinary", "nb", "they", "they/them"},
}

# Points awarded for each populated customer attribute
PROFILE_SCORE_WEIGHTS = {
    "first_name": 10,
    "last_name": 5,
    "middle_name": 1,
    "primary_email": 15,
    "primary_phone": 10,
    "position": 3,
    "department": 3,
    "birth_date": 2,
    "sex": 1,
    "description": 1,
    "code": 1,
}


class ProfileScore(NamedTuple):
    profile_score: int
    search_text: str
    state: CustomerState


def generate_pronoun(value: Optional[str]) -> Pronoun:
    """Map a free-text gender / pronoun token onto ``Pronoun``"""
    token = (value or "").strip().lower()
    for pronoun, tokens in _PRONOUN_TOKENS.items():
        if token in tokens:
            return pronoun
    return Pronoun.UNKNOWN


def _flatten(values: Iterable[Any]) -> list:
    flat = []
    for value in values:
        if value is None or value == "":
            continue
        if isinstance(value, (list, tuple, set)):
            flat.extend(_flatten(value))
        else:
            flat.append(str(value).strip())
    return [item for item in flat if item]


def build_search_text(values: Iterable[Any]) -> str:
    """Join the distinct non-empty values into one space separated string"""
    seen = []
    for item in _flatten(values):
        if item not in seen:
            seen.append(item)
    return " ".join(seen)


def calc_profile_score(doc: Mapping[str, Any]) -> ProfileScore:
    """Profile score, search text and state for a customer document"""
    score = 0
    for field_name, weight in PROFILE_SCORE_WEIGHTS.items():
        value = doc.get(field_name)
        if value not in (None, "") and value != Pronoun.UNKNOWN:
            score += weight

    search_text = build_search_text(
        [
            doc.get("first_name"),
            doc.get("last_name"),
            doc.get("middle_name"),
            doc.get("emails") or doc.get("primary_email"),
            doc.get("phones") or doc.get("primary_phone"),
            doc.get("code"),
        ]
    )

    state = doc.get("state")
    if not isinstance(state, CustomerState):
        state = CustomerState.CUSTOMER if doc.get("primary_email") or doc.get("primary_phone") else CustomerState.VISITOR

    return ProfileScore(profile_score=score, search_text=search_text, state=state)


def company_search_text(doc: Mapping[str, Any]) -> str:
    return build_search_text(
        [
            doc.get("names") or doc.get("primary_name"),
            doc.get("emails") or doc.get("primary_email"),
            doc.get("phones") or doc.get("primary_phone"),
            doc.get("website"),
            doc.get("industry"),
            doc.get("plan"),
            doc.get("code"),
        ]
    )


def work_item_search_text(doc: Mapping[str, Any]) -> str:
    return build_search_text([doc.get("name"), doc.get("description")])
