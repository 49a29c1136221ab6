from typing import Dict

from app.errors import InvalidSupportCategory

# category id -> display name
SUPPORT_CATEGORIES: Dict[str, str] = {
    "general": "General Question",
    "technical": "Technical Issue",
    "billing": "Billing Question",
    "account": "Account Help",
    "listing_help": "Listing Help",
    "payment_issue": "Payment Issue",
    "bug_report": "Bug Report",
    "feature_request": "Feature Request",
}


def validate_support_category(category: str) -> str:
    normalized = (category or "").strip().lower()
    if normalized not in SUPPORT_CATEGORIES:
        raise InvalidSupportCategory(f"Unknown support category: {category!r}")
    return normalized


def support_category_name(category: str) -> str:
    """Display name; unknown ids are title-cased ("some_thing" -> "Some Thing")."""
    if category in SUPPORT_CATEGORIES:
        return SUPPORT_CATEGORIES[category]
    return " ".join(word.capitalize() for word in (category or "general").split("_"))
