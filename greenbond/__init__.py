"""Milestone-gated escrow for tokenized green bonds on Xian contracts."""

from greenbond.config import MilestoneSpec, ProjectConfig
from greenbond.errors import (
    CapExceeded,
    EscrowBusy,
    GreenBondError,
    IncorrectPayment,
    InvalidMilestones,
    Overflow,
    ReleaseOverflow,
    SaleNotOpen,
    Unauthorized,
)
from greenbond.factory import BondFactory, ProjectRecord
from greenbond.notify import CommitNotice, CommitNotifier
from greenbond.project import (
    BondProject,
    ContractNames,
    ImpactReceipt,
    MilestoneState,
    ProjectSnapshot,
    ReleaseReport,
    SaleStatus,
)
from greenbond.sources import deploy_payment_token

__all__ = [
    "BondFactory",
    "BondProject",
    "CapExceeded",
    "CommitNotice",
    "CommitNotifier",
    "ContractNames",
    "EscrowBusy",
    "GreenBondError",
    "ImpactReceipt",
    "IncorrectPayment",
    "InvalidMilestones",
    "MilestoneSpec",
    "MilestoneState",
    "Overflow",
    "ProjectConfig",
    "ProjectRecord",
    "ProjectSnapshot",
    "ReleaseOverflow",
    "ReleaseReport",
    "SaleNotOpen",
    "SaleStatus",
    "Unauthorized",
    "deploy_payment_token",
]
