from __future__ import annotations
from sqlalchemy.orm import declarative_base, relationship, Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, ForeignKey, UniqueConstraint, DateTime, text
from typing import Optional

Base = declarative_base()

# --- Core Models ---
class Hospital(Base):
    """Tenant. Most role assignments and permission overrides are scoped to one."""
    __tablename__ = 'hospitals'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

class User(Base):
    __tablename__ = 'users'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    user_roles = relationship('UserRole', back_populates='user', cascade='all, delete-orphan')
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

class UserRole(Base):
    """Role held by a user; hospital_id NULL means the role applies everywhere (e.g. global_admin)."""
    __tablename__ = 'user_roles'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    role_code: Mapped[str] = mapped_column(String(64), nullable=False)
    hospital_id: Mapped[Optional[int]] = mapped_column(ForeignKey('hospitals.id', ondelete='CASCADE'), nullable=True)
    __table_args__ = (UniqueConstraint('user_id', 'role_code', 'hospital_id', name='uq_user_role_scope'),)
    user = relationship('User', back_populates='user_roles')

class RolePermission(Base):
    """allowed flag for (role, key). hospital_id NULL is the global default, otherwise a tenant override."""
    __tablename__ = 'role_permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role_code: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    permission_key: Mapped[str] = mapped_column(String(96), nullable=False, index=True)
    allowed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    hospital_id: Mapped[Optional[int]] = mapped_column(ForeignKey('hospitals.id', ondelete='CASCADE'), nullable=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))

    # NULL hospital_id is not unique in most databases; the store upserts to keep one global row.
    __table_args__ = (UniqueConstraint('role_code', 'permission_key', 'hospital_id', name='uq_role_permission_scope'),)

class UserPermission(Base):
    __tablename__ = 'user_permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    permission_key: Mapped[str] = mapped_column(String(96), nullable=False)
    effect: Mapped[str] = mapped_column(String(8), nullable=False)
    __table_args__ = (UniqueConstraint('user_id', 'permission_key', name='uq_user_permission'),)
