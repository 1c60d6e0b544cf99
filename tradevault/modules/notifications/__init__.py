# Notifications module
from tradevault.modules.notifications.models import Notification, NotificationType

__all__ = ["Notification", "NotificationType"]
