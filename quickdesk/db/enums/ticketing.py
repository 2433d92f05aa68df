"""Ticket lifecycle enums."""

from enum import Enum


class TicketStatus(str, Enum):
    """Ticket lifecycle status."""

    OPEN = "Open"
    PENDING = "Pending"
    RESOLVED = "Resolved"
    CLOSED = "Closed"
    ARCHIVED = "Archived"


class TicketPriority(str, Enum):
    """Ticket priority level. NONE disables the SLA deadline."""

    NONE = "None"
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


class TicketType(str, Enum):
    """Ticket classification."""

    QUESTIONS = "Questions"
    INCIDENT = "Incident"
    PROBLEM = "Problem"
    FEATURE_REQUEST = "Feature Request"


class ActivityType(str, Enum):
    """Timeline entry taxonomy."""

    CREATE = "Create"
    TAGS = "Tags"
    DEADLINE = "Deadline"
    ASSIGNEE = "Assignee"
    PRIORITY = "Priority"
    STATUS = "Status"
    TYPE = "Type"
    COMPANY = "Company"
    FORWARD = "Forward"
    NOTE = "Note"
    UPDATE = "Update"


class Replier(str, Enum):
    """Who wrote the latest message on a ticket's thread."""

    AGENT = "agent"
    CLIENT = "client"


# Statuses that count as "done" for SLA purposes
RESOLVED_STATUSES = frozenset({TicketStatus.RESOLVED, TicketStatus.CLOSED})

# Priorities with a configurable lead time
RANKED_PRIORITIES = (
    TicketPriority.URGENT,
    TicketPriority.HIGH,
    TicketPriority.MEDIUM,
    TicketPriority.LOW,
)
