# Admin module
from tradevault.modules.admin.models import AuditLog, SystemConfig

__all__ = ["AuditLog", "SystemConfig"]
