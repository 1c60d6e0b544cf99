# Credit score module
from tradevault.modules.credit.models import CreditAttempt, CreditScoreLog, AttemptKind, CreditRule

__all__ = ["CreditAttempt", "CreditScoreLog", "AttemptKind", "CreditRule"]
