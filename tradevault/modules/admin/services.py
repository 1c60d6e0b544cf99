from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from decimal import Decimal
from typing import Optional, List, Tuple, Dict, Any
import logging

from tradevault.core.config import settings
from tradevault.core.database import utcnow
from tradevault.core.exceptions import DomainError, NotFound
from tradevault.modules.admin.models import AuditLog, SystemConfig, RECHARGE_ADDRESS_PREFIX
from tradevault.modules.admin.schemas import ApplicationType, ApplicationFilter
from tradevault.modules.users.models import User
from tradevault.modules.users.services import UserService
from tradevault.modules.credit.models import CreditScoreLog
from tradevault.modules.credit.services import CreditService
from tradevault.modules.kyc.models import KYCRecord, KYCStatus
from tradevault.modules.kyc.services import KYCService
from tradevault.modules.loans.accrual import as_utc
from tradevault.modules.loans.models import Loan, LoanRepayment, LoanStatus, RepaymentStatus
from tradevault.modules.loans.services import LoanService
from tradevault.modules.mining.models import MiningInvestment
from tradevault.modules.mining.services import MiningService
from tradevault.modules.notifications.models import NotificationType
from tradevault.modules.notifications.services import NotificationService
from tradevault.modules.trades.models import Trade, TradeMode, TradeStatus
from tradevault.modules.trades.services import TradeService
from tradevault.modules.wallet.models import Asset, Transaction, TransactionType, TransactionStatus
from tradevault.modules.wallet.services import AssetService, WalletService, to_money

logger = logging.getLogger(__name__)


def _username(username: Optional[str], email: Optional[str], user_id: int) -> str:
    return username or email or str(user_id)


class AdminService:
    """Service for admin operations"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============================================================
    # Audit Logging
    # ============================================================

    async def log_action(
        self,
        admin_id: int,
        action: str,
        resource_type: str,
        resource_id: Optional[int] = None,
        description: Optional[str] = None
    ) -> AuditLog:
        """Log an admin action; it commits or rolls back with the action itself"""
        log = AuditLog(
            admin_id=admin_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            description=description
        )
        self.db.add(log)
        await self.db.flush()
        return log

    async def get_audit_logs(
        self,
        action: Optional[str] = None,
        resource_type: Optional[str] = None,
        admin_id: Optional[int] = None,
        page: int = 1,
        page_size: int = 50
    ) -> Tuple[List[AuditLog], int]:
        """Get audit logs with filtering"""
        query = select(AuditLog)
        if action:
            query = query.where(AuditLog.action == action)
        if resource_type:
            query = query.where(AuditLog.resource_type == resource_type)
        if admin_id:
            query = query.where(AuditLog.admin_id == admin_id)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))

        query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total or 0

    # ============================================================
    # Applications
    # ============================================================

    async def _pending_transactions(self, txn_type: TransactionType) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(Transaction, User.username, User.email)
            .join(User, User.id == Transaction.user_id)
            .where(
                Transaction.type == txn_type,
                Transaction.status == TransactionStatus.PENDING
            )
        )
        app_type = ApplicationType.DEPOSIT if txn_type == TransactionType.DEPOSIT else ApplicationType.WITHDRAW
        return [
            {
                "type": app_type,
                "source": "transactions",
                "id": txn.id,
                "user_id": txn.user_id,
                "username": _username(username, email, txn.user_id),
                "amount": txn.amount,
                "currency": txn.currency,
                "status": txn.status.value,
                "created_at": txn.created_at,
                "details": {
                    "reference_code": txn.reference_code,
                    "network": txn.network,
                    "address": txn.address,
                    "tx_hash": txn.tx_hash,
                    "receipt_url": txn.receipt_url,
                    "fee": str(txn.fee)
                }
            }
            for txn, username, email in result.all()
        ]

    async def _pending_loans(self) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(Loan, User.username, User.email, User.credit_score)
            .join(User, User.id == Loan.user_id)
            .where(Loan.status == LoanStatus.PENDING)
        )
        return [
            {
                "type": ApplicationType.LOAN,
                "source": "loans",
                "id": loan.id,
                "user_id": loan.user_id,
                "username": _username(username, email, loan.user_id),
                "amount": loan.amount,
                "currency": loan.currency,
                "status": loan.status.value,
                "created_at": loan.created_at,
                "details": {
                    "term_days": loan.term_days,
                    "interest_rate": str(loan.interest_rate),
                    "credit_score": credit_score,
                    "guarantor_id": loan.guarantor_id
                }
            }
            for loan, username, email, credit_score in result.all()
        ]

    async def _pending_repayments(self) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(LoanRepayment, Loan.currency, User.username, User.email)
            .join(Loan, Loan.id == LoanRepayment.loan_id)
            .join(User, User.id == LoanRepayment.user_id)
            .where(LoanRepayment.status == RepaymentStatus.PENDING)
        )
        return [
            {
                "type": ApplicationType.REPAYMENT,
                "source": "loan_repayments",
                "id": repayment.id,
                "user_id": repayment.user_id,
                "username": _username(username, email, repayment.user_id),
                "amount": repayment.amount,
                "currency": currency,
                "status": repayment.status.value,
                "created_at": repayment.created_at,
                "details": {
                    "loan_id": repayment.loan_id,
                    "repayment_type": repayment.repayment_type.value,
                    "receipt_image_url": repayment.receipt_image_url
                }
            }
            for repayment, currency, username, email in result.all()
        ]

    async def _pending_kyc(self) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(KYCRecord, User.username, User.email)
            .join(User, User.id == KYCRecord.user_id)
            .where(KYCRecord.status == KYCStatus.PENDING)
        )
        return [
            {
                "type": ApplicationType.KYC,
                "source": "kyc_records",
                "id": record.id,
                "user_id": record.user_id,
                "username": _username(username, email, record.user_id),
                "status": record.status.value,
                "created_at": record.created_at,
                "details": {
                    "real_name": record.real_name,
                    "id_type": record.id_type.value,
                    "id_number": record.id_number,
                    "front_image_url": record.front_image_url,
                    "back_image_url": record.back_image_url,
                    "selfie_url": record.selfie_url
                }
            }
            for record, username, email in result.all()
        ]

    async def _pending_trades(self) -> List[Dict[str, Any]]:
        result = await self.db.execute(
            select(Trade, User.username, User.email)
            .join(User, User.id == Trade.user_id)
            .where(Trade.status == TradeStatus.PENDING)
        )
        return [
            {
                "type": ApplicationType.TRADE,
                "source": "trades",
                "id": trade.id,
                "user_id": trade.user_id,
                "username": _username(username, email, trade.user_id),
                "amount": trade.amount,
                "currency": trade.currency,
                "status": trade.status.value,
                "created_at": trade.created_at,
                "details": {
                    "symbol": trade.symbol,
                    "direction": trade.direction.value,
                    "entry_price": str(trade.entry_price),
                    "duration_minutes": trade.duration_minutes,
                    "profit_rate": str(trade.profit_rate),
                    "settle_at": trade.settle_at.isoformat()
                }
            }
            for trade, username, email in result.all()
        ]

    async def list_applications(self, app_filter: ApplicationFilter = ApplicationFilter.ALL) -> List[Dict[str, Any]]:
        """Every pending request across the review queues, newest first"""
        fetchers = {
            ApplicationFilter.DEPOSIT: lambda: self._pending_transactions(TransactionType.DEPOSIT),
            ApplicationFilter.WITHDRAW: lambda: self._pending_transactions(TransactionType.WITHDRAW),
            ApplicationFilter.LOAN: self._pending_loans,
            ApplicationFilter.REPAYMENT: self._pending_repayments,
            ApplicationFilter.KYC: self._pending_kyc,
            ApplicationFilter.TRADE: self._pending_trades,
        }
        if app_filter != ApplicationFilter.ALL:
            fetchers = {app_filter: fetchers[app_filter]}

        applications = []
        for fetch in fetchers.values():
            applications.extend(await fetch())

        applications.sort(key=lambda item: (as_utc(item["created_at"]), item["id"]), reverse=True)
        return applications

    async def _dispatch(
        self,
        admin_id: int,
        app_type: ApplicationType,
        item_id: int,
        approve: bool,
        reason: Optional[str]
    ):
        if app_type in (ApplicationType.DEPOSIT, ApplicationType.WITHDRAW):
            txn = await WalletService.get_transaction(self.db, item_id)
            if txn.type.value != app_type.value:
                raise NotFound(f"No {app_type.value} request with id {item_id}")
            if approve:
                return await WalletService.approve_transaction(self.db, item_id)
            return await WalletService.reject_transaction(self.db, item_id, reason)

        if app_type == ApplicationType.LOAN:
            if approve:
                return await LoanService.approve_loan(self.db, item_id, admin_id)
            return await LoanService.reject_loan(self.db, item_id, admin_id, reason)

        if app_type == ApplicationType.REPAYMENT:
            if approve:
                return await LoanService.approve_repayment(self.db, item_id, admin_id)
            return await LoanService.reject_repayment(self.db, item_id, admin_id, reason)

        if app_type == ApplicationType.TRADE:
            # Approving a trade settles it as a win, rejecting as a loss
            return await TradeService.set_outcome(self.db, item_id, approve, admin_id)

        if approve:
            return await KYCService.approve(self.db, item_id, admin_id)
        return await KYCService.reject(self.db, item_id, admin_id, reason)

    async def review_application(
        self,
        admin_id: int,
        app_type: ApplicationType,
        item_id: int,
        approve: bool,
        reason: Optional[str] = None
    ):
        """Approve or reject one request through its owning service"""
        verb = "approve" if approve else "reject"
        entity = await self._dispatch(admin_id, app_type, item_id, approve, reason)
        await self.log_action(
            admin_id, f"{verb}_{app_type.value}", app_type.value, item_id,
            f"{verb.capitalize()}d {app_type.value} {item_id}" + (f": {reason}" if reason else "")
        )
        logger.info(f"Admin {admin_id} {verb}d {app_type.value} {item_id}")
        return entity

    async def batch_review(
        self,
        admin_id: int,
        items: List[Tuple[ApplicationType, int]],
        approve: bool,
        reason: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Review several requests, each in its own transaction.

        A failing item is rolled back and reported; the others still commit.
        """
        await self.db.commit()

        results = []
        for app_type, item_id in items:
            try:
                entity = await self.review_application(admin_id, app_type, item_id, approve, reason)
                entity_status = entity.status.value
                await self.db.commit()
            except DomainError as e:
                await self.db.rollback()
                logger.warning(f"Batch review of {app_type.value} {item_id} failed: {e.detail}")
                results.append({"type": app_type, "id": item_id, "success": False, "error": e.detail})
                continue
            results.append({"type": app_type, "id": item_id, "success": True, "status": entity_status})
        return results

    # ============================================================
    # User Management
    # ============================================================

    async def get_users(
        self,
        search: Optional[str] = None,
        is_frozen: Optional[bool] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[User], int]:
        """Get users with filtering"""
        query = select(User)
        if search:
            search_term = f"%{search}%"
            query = query.where(
                or_(
                    User.email.ilike(search_term),
                    User.username.ilike(search_term),
                    User.wallet_address.ilike(search_term)
                )
            )
        if is_frozen is not None:
            query = query.where(User.is_frozen == is_frozen)

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))

        query = query.order_by(User.created_at.desc(), User.id.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)
        result = await self.db.execute(query)
        return list(result.scalars().all()), total or 0

    async def set_frozen(
        self,
        admin_id: int,
        user_id: int,
        is_frozen: bool,
        reason: Optional[str] = None
    ) -> User:
        """Freeze or unfreeze an account"""
        user = await UserService.get_user(self.db, user_id)
        user.is_frozen = is_frozen
        await self.db.flush()
        await self.db.refresh(user)

        action = "freeze_user" if is_frozen else "unfreeze_user"
        await self.log_action(admin_id, action, "user", user_id, reason)
        await NotificationService.notify(
            self.db, user_id, NotificationType.SYSTEM,
            "Account frozen" if is_frozen else "Account unfrozen",
            ("Deposits, withdrawals and loans are disabled on your account."
             if is_frozen else "Your account is active again.")
            + (f" Reason: {reason}" if reason else ""),
            related_entity_type="user", related_entity_id=user_id
        )
        logger.info(f"Admin {admin_id}: {action} {user_id}")
        return user

    async def adjust_balance(
        self,
        admin_id: int,
        user_id: int,
        amount: Decimal,
        reason: str,
        currency: Optional[str] = None
    ) -> Dict[str, Any]:
        """Signed manual correction, recorded as an adjustment entry"""
        currency = currency or settings.DEFAULT_CURRENCY
        await UserService.get_user(self.db, user_id)

        amount = to_money(amount)
        if amount > 0:
            await AssetService.credit(self.db, user_id, amount, currency)
        else:
            await AssetService.debit(self.db, user_id, -amount, currency)

        txn = await WalletService.record_entry(
            self.db, user_id, TransactionType.ADJUSTMENT, amount,
            note=f"Admin adjustment: {reason}", currency=currency
        )
        await self.log_action(
            admin_id, "adjust_balance", "user", user_id,
            f"{amount:+} {currency}: {reason}"
        )

        result = await self.db.execute(
            select(Asset)
            .where(Asset.user_id == user_id, Asset.currency == currency)
            .execution_options(populate_existing=True)
        )
        asset = result.scalar_one()
        return {
            "user_id": user_id,
            "currency": currency,
            "balance": asset.balance,
            "frozen_balance": asset.frozen_balance,
            "transaction_id": txn.id
        }

    async def restore_credit(self, admin_id: int, user_id: int, points: int, reason: str) -> CreditScoreLog:
        log = await CreditService.restore(self.db, user_id, points, reason, admin_id)
        await self.log_action(
            admin_id, "restore_credit", "user", user_id,
            f"+{log.change_amount} points ({log.previous_score} -> {log.new_score}): {reason}"
        )
        return log

    # ============================================================
    # Loans & Mining
    # ============================================================

    async def run_overdue_sweep(self, admin_id: int) -> Dict[str, int]:
        summary = await LoanService.mark_overdue_loans(self.db)
        await self.log_action(
            admin_id, "overdue_sweep", "loan", None,
            f"{summary['marked_overdue']} marked overdue, {summary['credit_deductions']} credit deductions"
        )
        return summary

    async def review_mining(
        self,
        admin_id: int,
        investment_id: int,
        action: str,
        note: Optional[str] = None
    ) -> MiningInvestment:
        """approve, reject or settle a mining investment"""
        if action == "approve":
            investment = await MiningService.approve(self.db, investment_id, admin_id)
        elif action == "reject":
            investment = await MiningService.reject(self.db, investment_id, admin_id, note)
        else:
            investment = await MiningService.settle(self.db, investment_id, admin_id)

        await self.log_action(
            admin_id, f"{action}_mining", "mining", investment_id,
            f"Tier {investment.tier}, {investment.amount}" + (f": {note}" if note else "")
        )
        return investment

    # ============================================================
    # Smart Trades
    # ============================================================

    async def set_trade_outcome(self, admin_id: int, trade_id: int, won: bool) -> Trade:
        trade = await TradeService.set_outcome(self.db, trade_id, won, admin_id)
        await self.log_action(
            admin_id, "set_trade_outcome", "trade", trade_id,
            f"{trade.symbol} {trade.direction.value} {trade.amount}: {'win' if won else 'loss'}"
        )
        return trade

    async def set_trade_mode(self, admin_id: int, user_id: int, mode: TradeMode) -> List[Trade]:
        await UserService.get_user(self.db, user_id)
        previous = await TradeService.get_trade_mode(self.db, user_id)
        settled = await TradeService.set_trade_mode(self.db, user_id, mode, admin_id)
        await self.log_action(
            admin_id, "set_trade_mode", "user", user_id,
            f"{previous.value} -> {mode.value}, {len(settled)} pending trades settled"
        )
        return settled

    async def run_trade_settlement(self, admin_id: int) -> Dict[str, int]:
        summary = await TradeService.settle_due_trades(self.db)
        await self.log_action(
            admin_id, "settle_trades", "trade", None,
            f"{summary['settled']} settled ({summary['won']} won, {summary['lost']} lost)"
        )
        return summary

    # ============================================================
    # System Configuration
    # ============================================================

    async def get_config(self) -> List[SystemConfig]:
        result = await self.db.execute(
            select(SystemConfig)
            .order_by(SystemConfig.key)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def set_recharge_address(self, admin_id: int, network: str, address: str) -> SystemConfig:
        """Create or replace the deposit address shown for a network"""
        key = f"{RECHARGE_ADDRESS_PREFIX}{network}"
        result = await self.db.execute(select(SystemConfig).where(SystemConfig.key == key))
        entry = result.scalar_one_or_none()

        old_value = entry.value if entry else None
        if entry is None:
            entry = SystemConfig(key=key, description=f"Deposit address for {network}")
            self.db.add(entry)
        entry.value = address
        entry.updated_by = admin_id
        entry.updated_at = utcnow()
        await self.db.flush()
        await self.db.refresh(entry)

        await self.log_action(
            admin_id, "update_config", "system_config", entry.id,
            f"{key}: {old_value or '(unset)'} -> {address}"
        )
        return entry
