from .user import User
from .subscription import Subscription, PlanName, SubscriptionStatus
from .file import File, Folder, Lifecycle
from .share import ShareLink, Permission
from .log import Log, LogAction, LogCategory
