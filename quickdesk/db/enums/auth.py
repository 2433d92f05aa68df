"""Auth and membership enums."""

from enum import Enum


class Role(str, Enum):
    """
    Session roles.

    - OWNER: Organization owner (billing, licenses, members)
    - AGENT: Non-client member working the inbox
    - CLIENT: Contact of a client company (submits tickets only)
    """

    OWNER = "owner"
    AGENT = "agent"
    CLIENT = "client"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


class MemberStatus(str, Enum):
    """Invitation lifecycle for organization members and company employees."""

    UNINVITED = "UNINVITED"
    INVITED = "INVITED"
    NOT_VERIFIED = "NOT_VERIFIED"
    VERIFIED = "VERIFIED"
