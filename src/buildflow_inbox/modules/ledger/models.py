from __future__ import annotations

import enum
import uuid
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from buildflow_inbox.core.models import Base, Timestamped, UUIDPrimaryKey


class CostCategory(str, enum.Enum):
    MATERIALS = "materials"
    SUBTRADES = "subtrades"
    OTHER_COSTS = "other_costs"
    TIP_FEES = "tip_fees"


class Job(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "ledger_job"

    job_address: Mapped[str] = mapped_column(String(300), index=True)
    client_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    project_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, index=True)


class _JobCost(UUIDPrimaryKey, Timestamped):
    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("ledger_job.id", ondelete="CASCADE"), index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))


class Material(_JobCost, Base):
    __tablename__ = "ledger_material"

    description: Mapped[str] = mapped_column(Text)
    supplier: Mapped[str] = mapped_column(String(200))
    invoice_date: Mapped[str | None] = mapped_column(String(10), nullable=True)

    job = relationship("Job")


class SubTrade(_JobCost, Base):
    __tablename__ = "ledger_sub_trade"

    trade: Mapped[str] = mapped_column(String(200))
    contractor: Mapped[str] = mapped_column(String(200))
    invoice_date: Mapped[str | None] = mapped_column(String(10), nullable=True)

    job = relationship("Job")


class OtherCost(_JobCost, Base):
    __tablename__ = "ledger_other_cost"

    description: Mapped[str] = mapped_column(Text)

    job = relationship("Job")


class TipFee(_JobCost, Base):
    __tablename__ = "ledger_tip_fee"

    description: Mapped[str] = mapped_column(Text)
    cartage_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))

    job = relationship("Job")


COST_MODELS: dict[CostCategory, type[_JobCost]] = {
    CostCategory.MATERIALS: Material,
    CostCategory.SUBTRADES: SubTrade,
    CostCategory.OTHER_COSTS: OtherCost,
    CostCategory.TIP_FEES: TipFee,
}
