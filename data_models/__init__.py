from .base import Base
from .dbo_person import Person, IdentityLink
from .dbo_event import Event
from .dbo_email import EmailMessage, EmailEvent
from .dbo_subscription import Subscription
from .dbo_features import PersonFeatures
from .dbo_segment import Segment, SegmentMembership
