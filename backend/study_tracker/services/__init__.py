"""Services layer for Study Tracker backend."""

from .meeting_lifecycle import MeetingLifecycle, active_meetings
from .meeting_log import AdvisorMeetingLogger

__all__ = ["AdvisorMeetingLogger", "MeetingLifecycle", "active_meetings"]
