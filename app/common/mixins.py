"""
Common mixins for multi-tenant models
"""
from sqlalchemy import Column, DateTime, Enum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
import enum


class RecordState(str, enum.Enum):
    """Explicit lifecycle of a persisted record. Deletion is a state change, never a physical removal."""
    ACTIVE = "active"
    DELETED = "deleted"


class TenantMixin:
    """Mixin for multi-tenant models that adds tenant_id and ensures tenant isolation"""

    tenant_id = Column(UUID(as_uuid=True), nullable=False, index=True)


class TimestampMixin:
    """Mixin for models that need timestamp tracking"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class LifecycleMixin:
    """Mixin for soft delete through an explicit record_state column"""

    record_state = Column(
        Enum(RecordState, name="record_state", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=RecordState.ACTIVE,
        index=True
    )
    # Audit only; read paths filter on record_state
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def soft_delete(self):
        self.record_state = RecordState.DELETED
        self.deleted_at = func.now()
