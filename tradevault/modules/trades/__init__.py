# Smart trades module
from tradevault.modules.trades.models import Trade, TradeStatus, TradeMode

__all__ = ["Trade", "TradeStatus", "TradeMode"]
