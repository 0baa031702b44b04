"""Investment contract and balance ledger engine."""
from investments.unit_of_work import UnitOfWork
from investments.contracts import InvestmentService
from investments.withdrawals import WithdrawalService
from investments.accrual import AccrualScheduler
from investments.reconciliation import WebhookReconciler
from investments.spins import SpinWheel
from investments.transfers import TransferService


def build_services(session, gateway, config):
    """Wire the services around one unit of work."""
    uow = UnitOfWork(session)
    investments = InvestmentService(uow, gateway, brand=config.get("PLATFORM_BRAND", "Invest"))
    withdrawals = WithdrawalService(uow, gateway, config)
    return {
        "uow": uow,
        "investments": investments,
        "withdrawals": withdrawals,
        "accrual": AccrualScheduler(uow),
        "webhooks": WebhookReconciler(uow, investments, withdrawals),
        "transfers": TransferService(uow),
        "spins": SpinWheel(uow),
    }
