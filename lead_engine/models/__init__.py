from .agent import Agent
from .source import Source
from .agent_pool_membership import AgentPoolMembership
from .lead import Lead, LEAD_STATUSES, TERMINAL_STATUSES
from .lead_assignment import LeadAssignment
from .assignment_history import AssignmentHistoryEntry
from .lead_activities import LeadActivity
from .follow_up_tasks import FollowUpTask
from .activity_log import ActivityLog
from .setting import Setting
from .dnd_registry import DndEntry, normalize_phone

__all__ = [
    "Agent",
    "Source",
    "AgentPoolMembership",
    "Lead",
    "LEAD_STATUSES",
    "TERMINAL_STATUSES",
    "LeadAssignment",
    "AssignmentHistoryEntry",
    "LeadActivity",
    "FollowUpTask",
    "ActivityLog",
    "Setting",
    "DndEntry",
    "normalize_phone",
]
