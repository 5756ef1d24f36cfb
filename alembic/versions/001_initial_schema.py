"""001 – Initial schema: organizations, users, sessions, access control,
attendance, leave, payroll and the audit trail.

Enum-like columns are VARCHAR with CHECK constraints so new values only
need a constraint swap, not an ALTER TYPE.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 10:00:00.000000+05:30
"""

from alembic import op

# Revision identifiers
revision = "001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _in(column: str, values: list[str]) -> str:
    vals = ", ".join(f"'{v}'" for v in values)
    return f"CHECK ({column} IN ({vals}))"


USER_STATUSES = ["active", "inactive", "suspended"]
ATTENDANCE_STATUSES = ["present", "absent", "late", "half_day", "work_from_home"]
LEAVE_STATUSES = ["pending", "approved", "rejected", "cancelled"]
PAYROLL_STATUSES = ["draft", "generated", "paid", "cancelled"]


# ---------------------------------------------------------------------------
# UPGRADE
# ---------------------------------------------------------------------------


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    # ── 1. organizations ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE organizations (
            id                UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            code              VARCHAR(10)  NOT NULL UNIQUE,
            name              VARCHAR(200) NOT NULL,
            address           TEXT,
            contact_info      JSONB,
            working_days      JSONB DEFAULT '["monday","tuesday","wednesday","thursday","friday"]',
            work_start_time   TIME DEFAULT '09:00',
            work_end_time     TIME DEFAULT '18:00',
            currency          VARCHAR(3)  DEFAULT 'INR',
            timezone          VARCHAR(64) DEFAULT 'Asia/Kolkata',
            subscription_plan VARCHAR(20) DEFAULT 'free',
            is_active         BOOLEAN DEFAULT TRUE,
            created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_organizations_code CHECK (code ~ '^[A-Z0-9]{2,10}$')
        )
    """)

    # ── 2. users ──────────────────────────────────────────────────────────
    op.execute(f"""
        CREATE TABLE users (
            id                   UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            full_name            VARCHAR(100) NOT NULL,
            email                VARCHAR(255) NOT NULL,
            phone                VARCHAR(20),
            password_hash        VARCHAR(255) NOT NULL,
            role                 INTEGER NOT NULL DEFAULT 5,
            status               VARCHAR(20) NOT NULL DEFAULT 'active'
                                 {_in("status", USER_STATUSES)},
            organization         VARCHAR(200),
            organization_code    VARCHAR(10) NOT NULL,
            last_login           TIMESTAMPTZ,
            employee_code        VARCHAR(20),
            gender               VARCHAR(10),
            dob                  DATE,
            department           VARCHAR(100),
            designation          VARCHAR(100),
            joining_date         DATE,
            employee_type        VARCHAR(20),
            reporting_manager_id UUID REFERENCES users(id) ON DELETE SET NULL,
            salary_structure     JSONB,
            bank_details         JSONB,
            created_by           UUID REFERENCES users(id) ON DELETE SET NULL,
            updated_by           UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at           TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at           TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_users_org_email UNIQUE (organization_code, email),
            CONSTRAINT uq_users_org_phone UNIQUE (organization_code, phone),
            CONSTRAINT uq_users_org_employee_code UNIQUE (organization_code, employee_code)
        )
    """)
    op.execute("CREATE INDEX ix_users_org_role ON users (organization_code, role)")

    # ── 3. user_sessions ──────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE user_sessions (
            id                 UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id            UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            token_hash         VARCHAR(512) NOT NULL,
            refresh_token_hash VARCHAR(512),
            ip_address         INET,
            user_agent         TEXT,
            expires_at         TIMESTAMPTZ NOT NULL,
            is_revoked         BOOLEAN DEFAULT FALSE,
            created_at         TIMESTAMPTZ DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_user_sessions_token_hash ON user_sessions (token_hash)")
    op.execute(
        "CREATE INDEX ix_user_sessions_refresh_token_hash "
        "ON user_sessions (refresh_token_hash)"
    )

    # ── 4. permissions / roles / role_permissions ─────────────────────────
    op.execute("""
        CREATE TABLE permissions (
            id                   UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name                 VARCHAR(100) NOT NULL,
            display_name         VARCHAR(100) NOT NULL,
            description          VARCHAR(500),
            module               VARCHAR(20) NOT NULL,
            action               VARCHAR(20) NOT NULL,
            resource             VARCHAR(100),
            is_active            BOOLEAN DEFAULT TRUE,
            is_system_permission BOOLEAN DEFAULT FALSE,
            organization_code    VARCHAR(10),
            created_at           TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at           TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_permissions_org_name UNIQUE (organization_code, name)
        )
    """)
    op.execute("CREATE INDEX ix_permissions_module_action ON permissions (module, action)")

    op.execute("""
        CREATE TABLE roles (
            id                UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name              VARCHAR(50)  NOT NULL,
            display_name      VARCHAR(100) NOT NULL,
            description       VARCHAR(500),
            is_active         BOOLEAN DEFAULT TRUE,
            is_system_role    BOOLEAN DEFAULT FALSE,
            level             INTEGER NOT NULL,
            data_access_level INTEGER NOT NULL DEFAULT 1,
            organization_code VARCHAR(10),
            created_by        UUID REFERENCES users(id) ON DELETE SET NULL,
            updated_by        UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_roles_org_name UNIQUE (organization_code, name),
            CONSTRAINT ck_roles_level_range CHECK (level BETWEEN 1 AND 100)
        )
    """)
    op.execute("CREATE INDEX ix_roles_org_level ON roles (organization_code, level)")

    op.execute("""
        CREATE TABLE role_permissions (
            role_id       UUID NOT NULL REFERENCES roles(id) ON DELETE CASCADE,
            permission_id UUID NOT NULL REFERENCES permissions(id) ON DELETE CASCADE,
            position      INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (role_id, permission_id)
        )
    """)

    # ── 5. attendance_records ─────────────────────────────────────────────
    op.execute(f"""
        CREATE TABLE attendance_records (
            id                UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            employee_id       UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            organization_code VARCHAR(10) NOT NULL,
            date              DATE NOT NULL,
            check_in          TIMESTAMPTZ NOT NULL,
            check_out         TIMESTAMPTZ,
            total_hours       DOUBLE PRECISION,
            status            VARCHAR(20) NOT NULL DEFAULT 'present'
                              {_in("status", ATTENDANCE_STATUSES)},
            notes             VARCHAR(500),
            is_logged_in      BOOLEAN DEFAULT TRUE,
            version           INTEGER NOT NULL DEFAULT 1,
            created_by        UUID REFERENCES users(id) ON DELETE SET NULL,
            updated_by        UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_attendance_checkout_after_checkin
                CHECK (check_out IS NULL OR check_out > check_in)
        )
    """)
    op.execute(
        "CREATE INDEX ix_attendance_employee_date ON attendance_records (employee_id, date)"
    )
    op.execute(
        "CREATE INDEX ix_attendance_org_date ON attendance_records (organization_code, date)"
    )

    # ── 6. leave_types / leave_applications ───────────────────────────────
    op.execute("""
        CREATE TABLE leave_types (
            id                     UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name                   VARCHAR(50) NOT NULL,
            description            VARCHAR(500),
            days_allowed           INTEGER NOT NULL,
            is_carry_forward       BOOLEAN DEFAULT FALSE,
            max_carry_forward_days INTEGER DEFAULT 0,
            color                  VARCHAR(7) DEFAULT '#3B82F6',
            requires_approval      BOOLEAN DEFAULT TRUE,
            min_days_notice        INTEGER DEFAULT 0,
            max_consecutive_days   INTEGER,
            is_active              BOOLEAN DEFAULT TRUE,
            organization_code      VARCHAR(10) NOT NULL,
            created_by             UUID REFERENCES users(id) ON DELETE SET NULL,
            updated_by             UUID REFERENCES users(id) ON DELETE SET NULL,
            created_at             TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at             TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_leave_types_org_name UNIQUE (organization_code, name),
            CONSTRAINT ck_leave_types_days CHECK (days_allowed BETWEEN 1 AND 365)
        )
    """)

    op.execute(f"""
        CREATE TABLE leave_applications (
            id                UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            employee_id       UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            leave_type_id     UUID NOT NULL REFERENCES leave_types(id),
            organization_code VARCHAR(10) NOT NULL,
            start_date        DATE NOT NULL,
            end_date          DATE NOT NULL,
            total_days        INTEGER NOT NULL,
            reason            VARCHAR(500) NOT NULL,
            status            VARCHAR(20) NOT NULL DEFAULT 'pending'
                              {_in("status", LEAVE_STATUSES)},
            applied_at        TIMESTAMPTZ DEFAULT NOW(),
            approved_by       UUID REFERENCES users(id) ON DELETE SET NULL,
            approved_at       TIMESTAMPTZ,
            rejected_by       UUID REFERENCES users(id) ON DELETE SET NULL,
            rejected_at       TIMESTAMPTZ,
            rejection_reason  VARCHAR(500),
            cancelled_at      TIMESTAMPTZ,
            created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_leave_dates_ordered CHECK (end_date >= start_date)
        )
    """)
    op.execute(
        "CREATE INDEX ix_leave_applications_employee_dates "
        "ON leave_applications (employee_id, start_date, end_date)"
    )
    op.execute(
        "CREATE INDEX ix_leave_applications_org_status "
        "ON leave_applications (organization_code, status)"
    )

    # ── 7. payroll_records ────────────────────────────────────────────────
    op.execute(f"""
        CREATE TABLE payroll_records (
            id                UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            employee_id       UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            organization_code VARCHAR(10) NOT NULL,
            month             INTEGER NOT NULL,
            year              INTEGER NOT NULL,
            basic_salary      NUMERIC(12, 2) NOT NULL,
            allowances        JSONB DEFAULT '[]',
            deductions        JSONB DEFAULT '[]',
            gross_salary      NUMERIC(12, 2) NOT NULL,
            total_deductions  NUMERIC(12, 2) NOT NULL,
            net_salary        NUMERIC(12, 2) NOT NULL,
            status            VARCHAR(20) NOT NULL DEFAULT 'draft'
                              {_in("status", PAYROLL_STATUSES)},
            generated_by      UUID REFERENCES users(id) ON DELETE SET NULL,
            generated_at      TIMESTAMPTZ,
            payslip_url       VARCHAR(500),
            created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at        TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_payroll_employee_period
                UNIQUE (employee_id, month, year, organization_code),
            CONSTRAINT ck_payroll_month CHECK (month BETWEEN 1 AND 12)
        )
    """)
    op.execute(
        "CREATE INDEX ix_payroll_org_period ON payroll_records (organization_code, year, month)"
    )

    # ── 8. audit_trail ────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE audit_trail (
            id                UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            actor_id          UUID REFERENCES users(id) ON DELETE SET NULL,
            organization_code VARCHAR(10),
            action            VARCHAR(50) NOT NULL,
            entity_type       VARCHAR(50) NOT NULL,
            entity_id         UUID NOT NULL,
            old_values        JSONB,
            new_values        JSONB,
            ip_address        INET,
            user_agent        TEXT,
            created_at        TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("CREATE INDEX ix_audit_trail_actor_id ON audit_trail (actor_id)")
    op.execute("CREATE INDEX ix_audit_trail_entity ON audit_trail (entity_type, entity_id)")
    op.execute("CREATE INDEX ix_audit_trail_created_at ON audit_trail (created_at)")
    op.execute("CREATE INDEX ix_audit_trail_action ON audit_trail (action)")


# ---------------------------------------------------------------------------
# DOWNGRADE
# ---------------------------------------------------------------------------


def downgrade() -> None:
    # Drop tables in reverse dependency order
    tables = [
        "audit_trail",
        "payroll_records",
        "leave_applications",
        "leave_types",
        "attendance_records",
        "role_permissions",
        "roles",
        "permissions",
        "user_sessions",
        "users",
        "organizations",
    ]
    for t in tables:
        op.execute(f"DROP TABLE IF EXISTS {t} CASCADE")
