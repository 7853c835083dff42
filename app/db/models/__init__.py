from .activity import Activity, SportType, RecurringType, DayOfWeek
from .activity_session import ActivitySession, SessionStatus
from .participant import ActivityParticipant, ParticipantStatus
from .subscription import ActivitySubscription
