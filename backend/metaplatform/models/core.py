"""
Core ORM models
Users, dynamic schemas (data models), schema-validated entities,
relationships between schemas, applications and features
"""
from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    String,
    Table,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from metaplatform.database import Base


application_features = Table(
    "application_features",
    Base.metadata,
    Column("application_id", Uuid, ForeignKey("applications.id", ondelete="CASCADE"), primary_key=True),
    Column("feature_id", Uuid, ForeignKey("features.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    """Platform user

    The password column is opaque: authentication is handled outside this service.
    """

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid4)
    email = Column(String(255), nullable=False, unique=True)
    password = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    role = Column(String(50), default="user", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    dark_mode = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"


class Schema(Base):
    """User-defined record type ("model")

    `definition` holds {"fields": [{name, type, required, description}]}.
    """

    __tablename__ = "schemas"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    definition = Column("schema", JSON, default=dict, nullable=False)
    is_system = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User")
    entities = relationship("Entity", back_populates="schema", cascade="all, delete-orphan", passive_deletes=True)

    @property
    def fields(self):
        return (self.definition or {}).get("fields", [])

    def __repr__(self):
        return f"<Schema(id={self.id}, name='{self.name}')>"


class Relationship(Base):
    """Relationship between two schemas"""

    __tablename__ = "relationships"
    __table_args__ = (
        CheckConstraint(
            "type IN ('one-to-one', 'one-to-many', 'many-to-one', 'many-to-many')",
            name="ck_relationships_type",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False)
    source_schema_id = Column(Uuid, ForeignKey("schemas.id", ondelete="CASCADE"), nullable=False)
    target_schema_id = Column(Uuid, ForeignKey("schemas.id", ondelete="CASCADE"), nullable=False)
    source_field = Column(String(255), nullable=True)
    target_field = Column(String(255), nullable=True)
    cascade = Column(Boolean, default=False, nullable=False)
    nullable = Column(Boolean, default=True, nullable=False)
    description = Column(Text, nullable=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    source_schema = relationship("Schema", foreign_keys=[source_schema_id])
    target_schema = relationship("Schema", foreign_keys=[target_schema_id])

    def __repr__(self):
        return f"<Relationship(id={self.id}, name='{self.name}', type='{self.type}')>"


class Entity(Base):
    """Data row validated against its schema"""

    __tablename__ = "entities"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=False)
    data = Column(JSON, default=dict, nullable=False)
    schema_id = Column(Uuid, ForeignKey("schemas.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    is_system = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    schema = relationship("Schema", back_populates="entities")

    def __repr__(self):
        return f"<Entity(id={self.id}, name='{self.name}')>"


class Application(Base):
    """Generated React application

    Build lifecycle: draft -> building -> built | failed
    """

    __tablename__ = "applications"
    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'building', 'built', 'failed', 'deployed')",
            name="ck_applications_status",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    config = Column(JSON, default=dict, nullable=False)
    status = Column(String(20), default="draft", nullable=False)
    schema_id = Column(Uuid, ForeignKey("schemas.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    schema = relationship("Schema")
    components = relationship("Component", back_populates="application", cascade="all, delete-orphan", passive_deletes=True)
    features = relationship("Feature", secondary=application_features, back_populates="applications")

    @property
    def feature_ids(self):
        return [feature.id for feature in self.features]

    def __repr__(self):
        return f"<Application(id={self.id}, name='{self.name}', status='{self.status}')>"


class Component(Base):
    """UI component of an application"""

    __tablename__ = "components"

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    type = Column(String(100), nullable=False)
    config = Column(JSON, default=dict, nullable=False)
    props = Column(JSON, default=dict, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    application_id = Column(Uuid, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    application = relationship("Application", back_populates="components")


class Feature(Base):
    """Reusable feature that can be attached to applications"""

    __tablename__ = "features"
    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'active', 'deprecated')",
            name="ck_features_status",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    display_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    config = Column(JSON, default=dict, nullable=False)
    status = Column(String(20), default="draft", nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    applications = relationship("Application", secondary=application_features, back_populates="features")

    def __repr__(self):
        return f"<Feature(id={self.id}, name='{self.name}')>"
