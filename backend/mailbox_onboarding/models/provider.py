"""
Identity provider families.
"""
from enum import Enum


class Provider(str, Enum):
    """Provider family a mailbox authenticates with."""
    GOOGLE = "google"
    MICROSOFT = "microsoft"
    UNKNOWN = "unknown"  # classification only, never an OAuth target

    @property
    def is_known(self) -> bool:
        return self is not Provider.UNKNOWN
