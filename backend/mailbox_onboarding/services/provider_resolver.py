"""
Mailbox address to provider family classification.
"""
from mailbox_onboarding.models.provider import Provider

GOOGLE_DOMAINS = frozenset({"gmail.com", "googlemail.com"})
MICROSOFT_DOMAINS = frozenset({"outlook.com", "hotmail.com", "live.com", "office365.com"})


def classify(email: str) -> Provider:
    """
    Classify a mailbox address by its domain.

    Custom domains (Google Workspace, Microsoft 365) can't be told apart
    from the address alone, so they come back as UNKNOWN and the user is
    asked to pick a provider.

    Args:
        email: Mailbox address

    Returns:
        Provider.GOOGLE, Provider.MICROSOFT or Provider.UNKNOWN
    """
    address = (email or "").strip().lower()
    if "@" not in address:
        return Provider.UNKNOWN

    domain = address.rsplit("@", 1)[1]
    if domain in GOOGLE_DOMAINS:
        return Provider.GOOGLE
    if domain in MICROSOFT_DOMAINS:
        return Provider.MICROSOFT
    return Provider.UNKNOWN
