"""
ERP Workflow Tools
Actor directory model (main bind).

Models:
    - Role: named permission set; role id ``admin`` implies every permission
    - User: display name used as the actor reference on workflow rows
"""

from erp_tools.models import db
from erp_tools.models.base import utcnow

ADMIN_ROLE_ID = "admin"


class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.String(60), primary_key=True, comment="slug, e.g. 'admin', 'purchasing'")
    name = db.Column(db.String(120), nullable=False)
    permissions = db.Column(db.JSON, nullable=False, default=list)

    users = db.relationship("User", back_populates="role", lazy="select")

    def grants(self, permission: str) -> bool:
        return self.id == ADMIN_ROLE_ID or permission in (self.permissions or [])

    def to_dict(self):
        return {"id": self.id, "name": self.name, "permissions": list(self.permissions or [])}

    def __repr__(self):
        return f"<Role {self.id}>"


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(150), nullable=False, unique=True, comment="display name stored on workflow rows")
    email = db.Column(db.String(200), nullable=True, unique=True)
    role_id = db.Column(db.String(60), db.ForeignKey("roles.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    role = db.relationship("Role", back_populates="users")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role_id": self.role_id,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.name}>"


# Baseline roles created by ``flask seed-roles``; admin implies everything
DEFAULT_ROLES = {
    ADMIN_ROLE_ID: ("Administrador", []),
    "purchasing": ("Compras", [
        "requests:create", "requests:edit:pending", "requests:notes:add",
        "requests:status:review", "requests:status:pending-approval", "requests:status:ordered",
        "requests:status:received-in-warehouse", "requests:status:entered-erp",
        "requests:status:cancel", "requests:status:unapproval-request", "requests:view:cost",
    ]),
    "sales": ("Ventas", [
        "requests:create", "requests:edit:pending", "requests:notes:add",
        "requests:status:unapproval-request",
    ]),
    "planner": ("Planificador", [
        "planner:create", "planner:edit:pending", "planner:status:review",
        "planner:status:in-progress", "planner:status:on-hold", "planner:status:completed",
        "planner:status:unapprove-request", "planner:priority:update",
        "planner:machine:assign", "planner:schedule",
    ]),
    "warehouse": ("Bodega", [
        "planner:receive", "requests:status:received-in-warehouse",
        "warehouse:dispatch-check:use", "warehouse:dispatch-containers:manage", "warehouse:units:create",
    ]),
}


def seed_default_roles() -> int:
    """Insert missing baseline roles. Idempotent; caller commits."""
    created = 0
    for role_id, (name, permissions) in DEFAULT_ROLES.items():
        if db.session.get(Role, role_id) is None:
            db.session.add(Role(id=role_id, name=name, permissions=list(permissions)))
            created += 1
    db.session.flush()
    return created
