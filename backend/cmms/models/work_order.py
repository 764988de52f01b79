from __future__ import annotations
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, DateTime, ForeignKey, func
from cmms.models.authz import Base

class WorkOrder(Base):
    __tablename__ = 'work_orders'
    # Status constants
    STATUS_PENDING = 'pending'
    STATUS_ASSIGNED = 'assigned'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_PENDING_SUPERVISOR_APPROVAL = 'pending_supervisor_approval'
    STATUS_PENDING_ENGINEER_REVIEW = 'pending_engineer_review'
    STATUS_PENDING_REPORTER_CLOSURE = 'pending_reporter_closure'
    STATUS_COMPLETED = 'completed'
    STATUS_REJECTED_BY_TECHNICIAN = 'rejected_by_technician'
    STATUS_AUTO_CLOSED = 'auto_closed'
    STATUS_CANCELLED = 'cancelled'
    # Legacy values kept readable for historical rows; no transition produces or consumes them.
    STATUS_NEEDS_REDIRECTION = 'needs_redirection'
    STATUS_AWAITING_APPROVAL = 'awaiting_approval'
    STATUS_CUSTOMER_APPROVED = 'customer_approved'
    STATUS_CUSTOMER_REJECTED = 'customer_rejected'

    WORKFLOW_STATUSES = (
        STATUS_PENDING, STATUS_ASSIGNED, STATUS_IN_PROGRESS,
        STATUS_PENDING_SUPERVISOR_APPROVAL, STATUS_PENDING_ENGINEER_REVIEW, STATUS_PENDING_REPORTER_CLOSURE,
        STATUS_COMPLETED, STATUS_REJECTED_BY_TECHNICIAN, STATUS_AUTO_CLOSED, STATUS_CANCELLED,
    )
    LEGACY_STATUSES = (STATUS_NEEDS_REDIRECTION, STATUS_AWAITING_APPROVAL, STATUS_CUSTOMER_APPROVED, STATUS_CUSTOMER_REJECTED)
    ALL_STATUSES = WORKFLOW_STATUSES + LEGACY_STATUSES
    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_AUTO_CLOSED, STATUS_CANCELLED)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    hospital_id: Mapped[int] = mapped_column(ForeignKey('hospitals.id', ondelete='CASCADE'), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default='')
    status: Mapped[str] = mapped_column(String(40), nullable=False, default=STATUS_PENDING, index=True)
    reported_by: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    assigned_to: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    assigned_team: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)

    # Milestones: timestamp set iff the stage has been passed
    start_time = mapped_column(DateTime(timezone=True), nullable=True)
    started_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    technician_completed_at = mapped_column(DateTime(timezone=True), nullable=True)
    technician_completed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    technician_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    supervisor_approved_at = mapped_column(DateTime(timezone=True), nullable=True)
    supervisor_approved_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    supervisor_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    engineer_approved_at = mapped_column(DateTime(timezone=True), nullable=True)
    engineer_approved_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    engineer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_reviewed_at = mapped_column(DateTime(timezone=True), nullable=True)
    customer_reviewed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    reporter_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    maintenance_manager_approved_at = mapped_column(DateTime(timezone=True), nullable=True)
    maintenance_manager_approved_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    maintenance_manager_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejected_at = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    rejection_stage: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pending_closure_since = mapped_column(DateTime(timezone=True), nullable=True)
    auto_closed_at = mapped_column(DateTime(timezone=True), nullable=True)

    created_at = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

# Status flow: pending/assigned -> in_progress -> pending_supervisor_approval -> pending_engineer_review
#   -> pending_reporter_closure -> completed (auto_closed after the closure window).
# Rejections send the order one stage back; technicians reject into rejected_by_technician.


class WorkOrderOperation(Base):
    """Append-only log of persisted workflow steps, written in the same transaction as the status change."""
    __tablename__ = 'work_order_operations'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    work_order_id: Mapped[int] = mapped_column(ForeignKey('work_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(40), nullable=False)
    from_status: Mapped[str] = mapped_column(String(40), nullable=False)
    to_status: Mapped[str] = mapped_column(String(40), nullable=False)
    performed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at = mapped_column(DateTime(timezone=True), server_default=func.now())
