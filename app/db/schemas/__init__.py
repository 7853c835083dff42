from .activity import (
    Activity,
    ActivityCreate,
    ActivityUpdate,
    JoinByCodeRequest,
    JoinByCodeResult,
    SubscriptionStatus,
)
from .session import (
    ActivitySession,
    ActivitySessionDetail,
    ActivitySessionUpdate,
    JoinEligibility,
    SessionStats,
    UpcomingSession,
    UserSessionStatus,
)
from .participant import Participant, ParticipationStatus, UserParticipation, UserParticipations
from .schedule import (
    Duration,
    MatchValidationRequest,
    RecurringDatesRequest,
    RecurringDatesResponse,
    ValidationResult,
)
