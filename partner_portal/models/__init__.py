from .partner import Partner
from .admin import Admin
from .team import Team, TeamMember, TeamInvitation
from .license import License
from .activity import ActivityLog
