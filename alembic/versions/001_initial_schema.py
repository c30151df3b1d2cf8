"""001 – Initial schema: employee read-model, leave periods, policies, balances,
requests, approvals, notifications and the audit trail.

Run once per tenant database.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 10:00:00.000000+00:00
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

# Enum columns are VARCHAR + CHECK so new values need no ALTER TYPE.
ENUM_CHECKS: dict[str, list[str]] = {
    "leave_type": [
        "ANNUAL", "SICK", "MATERNITY", "PATERNITY", "HAJJ_UMRAH",
        "EMERGENCY", "COMPASSIONATE", "STUDY", "UNPAID",
    ],
    "leave_request_status": [
        "PENDING", "MANAGER_APPROVED", "APPROVED", "REJECTED", "CANCELLED",
    ],
    "approver_type": ["MANAGER", "HR"],
    "approval_status": ["PENDING", "APPROVED", "REJECTED"],
    "notification_type": ["info", "action_required", "approval", "alert"],
}

TABLES_IN_DROP_ORDER = [
    "audit_trail",
    "notifications",
    "leave_approval",
    "leave_request",
    "leave_balance",
    "leave_type_config",
    "leave_period",
    "employees",
]


def _in(column: str, enum_name: str) -> str:
    vals = ", ".join(f"'{v}'" for v in ENUM_CHECKS[enum_name])
    return f"CHECK ({column} IN ({vals}))"


def upgrade() -> None:
    # ══════════════════════════════════════════════════════════════════
    # Employee directory read-model
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE employees (
            id              UUID PRIMARY KEY,
            employee_code   VARCHAR(20) NOT NULL UNIQUE,
            first_name      VARCHAR(100) NOT NULL,
            last_name       VARCHAR(100),
            email           VARCHAR(255) NOT NULL UNIQUE,
            manager_id      UUID REFERENCES employees(id) ON DELETE SET NULL,
            is_active       BOOLEAN NOT NULL DEFAULT TRUE,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_employees_manager_id ON employees(manager_id)")

    # ══════════════════════════════════════════════════════════════════
    # Periods and policies
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE leave_period (
            id              UUID PRIMARY KEY,
            name            VARCHAR(100) NOT NULL,
            start_date      DATE NOT NULL,
            end_date        DATE NOT NULL,
            is_active       BOOLEAN NOT NULL DEFAULT TRUE,
            description     TEXT,
            created_by      UUID,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_leave_period_dates CHECK (start_date < end_date)
        )
    """)

    op.execute(f"""
        CREATE TABLE leave_type_config (
            id                      UUID PRIMARY KEY,
            leave_period_id         UUID NOT NULL REFERENCES leave_period(id),
            type                    VARCHAR(20) NOT NULL {_in("type", "leave_type")},
            name                    VARCHAR(100) NOT NULL,
            description             TEXT,
            default_quota           INTEGER NOT NULL,
            max_consecutive_days    INTEGER,
            advance_notice_days     INTEGER NOT NULL DEFAULT 0,
            is_carry_forward        BOOLEAN NOT NULL DEFAULT FALSE,
            max_carry_forward       INTEGER,
            requires_approval       BOOLEAN NOT NULL DEFAULT TRUE,
            allow_negative_balance  BOOLEAN NOT NULL DEFAULT FALSE,
            is_active               BOOLEAN NOT NULL DEFAULT TRUE,
            created_at              TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_leave_type_config_period_type UNIQUE (leave_period_id, type),
            CONSTRAINT ck_leave_type_config_quota CHECK (default_quota >= 0)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_type_config_leave_period_id "
        "ON leave_type_config(leave_period_id)"
    )

    # ══════════════════════════════════════════════════════════════════
    # Balances
    # ══════════════════════════════════════════════════════════════════
    op.execute("""
        CREATE TABLE leave_balance (
            id                      UUID PRIMARY KEY,
            employee_id             UUID NOT NULL REFERENCES employees(id),
            leave_period_id         UUID NOT NULL REFERENCES leave_period(id),
            leave_type_config_id    UUID NOT NULL REFERENCES leave_type_config(id),
            total_quota             INTEGER NOT NULL,
            used_quota              INTEGER NOT NULL DEFAULT 0,
            created_at              TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at              TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_leave_balance
                UNIQUE (employee_id, leave_period_id, leave_type_config_id),
            CONSTRAINT ck_leave_balance_used CHECK (used_quota >= 0)
        )
    """)
    op.execute("CREATE INDEX ix_leave_balance_employee_id ON leave_balance(employee_id)")

    # ══════════════════════════════════════════════════════════════════
    # Requests and approvals
    # ══════════════════════════════════════════════════════════════════
    op.execute(f"""
        CREATE TABLE leave_request (
            id                          UUID PRIMARY KEY,
            employee_id                 UUID NOT NULL REFERENCES employees(id),
            leave_period_id             UUID NOT NULL REFERENCES leave_period(id),
            leave_type_config_id        UUID NOT NULL REFERENCES leave_type_config(id),
            start_date                  DATE NOT NULL,
            end_date                    DATE NOT NULL,
            total_days                  INTEGER NOT NULL,
            reason                      TEXT NOT NULL,
            status                      VARCHAR(20) NOT NULL DEFAULT 'PENDING'
                                        {_in("status", "leave_request_status")},
            submitted_at                TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            requires_manager_approval   BOOLEAN NOT NULL,
            manager_id                  UUID REFERENCES employees(id),
            manager_comments            TEXT,
            manager_approved_at         TIMESTAMPTZ,
            hr_comments                 TEXT,
            hr_approved_at              TIMESTAMPTZ,
            finalized_at                TIMESTAMPTZ,
            rejection_reason            TEXT,
            cancelled_at                TIMESTAMPTZ,
            emergency_contact           VARCHAR(255),
            handover_notes              TEXT,
            created_at                  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at                  TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_leave_request_dates CHECK (start_date <= end_date),
            CONSTRAINT ck_leave_request_days CHECK (total_days > 0)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_request_employee_status ON leave_request(employee_id, status)"
    )
    op.execute(
        "CREATE INDEX ix_leave_request_manager_status ON leave_request(manager_id, status)"
    )

    op.execute(f"""
        CREATE TABLE leave_approval (
            id                  UUID PRIMARY KEY,
            leave_request_id    UUID NOT NULL REFERENCES leave_request(id),
            approver_id         UUID NOT NULL REFERENCES employees(id),
            approver_type       VARCHAR(10) NOT NULL {_in("approver_type", "approver_type")},
            status              VARCHAR(10) NOT NULL {_in("status", "approval_status")},
            comments            TEXT,
            approved_at         TIMESTAMPTZ,
            created_at          TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_leave_approval
                UNIQUE (leave_request_id, approver_id, approver_type)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_approval_leave_request_id ON leave_approval(leave_request_id)"
    )

    # ══════════════════════════════════════════════════════════════════
    # Notifications and audit
    # ══════════════════════════════════════════════════════════════════
    op.execute(f"""
        CREATE TABLE notifications (
            id              UUID PRIMARY KEY,
            recipient_id    UUID REFERENCES employees(id) ON DELETE CASCADE,
            type            VARCHAR(30) NOT NULL DEFAULT 'info'
                            {_in("type", "notification_type")},
            event           VARCHAR(50) NOT NULL,
            title           VARCHAR(200) NOT NULL,
            message         TEXT NOT NULL,
            action_url      VARCHAR(500),
            entity_type     VARCHAR(50),
            entity_id       UUID,
            is_read         BOOLEAN NOT NULL DEFAULT FALSE,
            read_at         TIMESTAMPTZ,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_notifications_recipient_id ON notifications(recipient_id)")

    op.execute("""
        CREATE TABLE audit_trail (
            id              UUID PRIMARY KEY,
            actor_id        UUID,
            action          VARCHAR(50) NOT NULL,
            entity_type     VARCHAR(50) NOT NULL,
            entity_id       UUID NOT NULL,
            old_values      JSON,
            new_values      JSON,
            created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_entity ON audit_trail(entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail(created_at)")


def downgrade() -> None:
    for table in TABLES_IN_DROP_ORDER:
        op.execute(sa.text(f'DROP TABLE IF EXISTS "{table}" CASCADE'))
