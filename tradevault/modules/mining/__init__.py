# Mining module
from tradevault.modules.mining.models import MiningInvestment, MiningStatus

__all__ = ["MiningInvestment", "MiningStatus"]
