from __future__ import annotations

CONTACT_FIELDS = ("email", "phone", "instagram", "twitter")


def mask_account_number(account_number: str | None) -> str | None:
    if not account_number:
        return None
    return f"****{account_number[-4:]}"


def party_view(user, *, include_contacts: bool) -> dict:
    """Public profile of a creator/winner; contact fields only once unlocked."""
    out = {
        "id": user.id,
        "display_name": user.display_name,
        "average_rating": user.average_rating,
    }
    if include_contacts:
        for field in CONTACT_FIELDS:
            out[field] = getattr(user, field)
    return out
