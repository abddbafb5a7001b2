"""Import every model so Base.metadata knows all tables."""

from database.models.companies import Company
from database.models.users import User, UserRole
from database.models.jobs import Job, JobStatus, JobPriority
from database.models.pipelines import PipelineStage
from database.models.candidates import (
    Candidate,
    JobCandidate,
    CandidateActivity,
    StageHistory,
    ActivityType,
)
from database.models.interviews import (
    Interview,
    InterviewPanelMember,
    InterviewFeedback,
    InterviewMode,
    InterviewStatus,
    Recommendation,
)
from database.models.notifications import Notification, NotificationType
from database.models.vendors import VendorJobAssignment
from database.models.sla import SLAConfig
from database.models.calendar import OAuthToken, CalendarEvent, CalendarProvider

__all__ = [
    "Company",
    "User",
    "UserRole",
    "Job",
    "JobStatus",
    "JobPriority",
    "PipelineStage",
    "Candidate",
    "JobCandidate",
    "CandidateActivity",
    "StageHistory",
    "ActivityType",
    "Interview",
    "InterviewPanelMember",
    "InterviewFeedback",
    "InterviewMode",
    "InterviewStatus",
    "Recommendation",
    "Notification",
    "NotificationType",
    "VendorJobAssignment",
    "SLAConfig",
    "OAuthToken",
    "CalendarEvent",
    "CalendarProvider",
]
