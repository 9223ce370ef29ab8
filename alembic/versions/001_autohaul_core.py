"""Core schema: portals, orders, event outbox

Revision ID: 001
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto";')

    op.execute("""
        CREATE TYPE eventstatus AS ENUM ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED');
    """)

    # ── portals ──────────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE portals (
            id VARCHAR(64) PRIMARY KEY,
            company_name VARCHAR(255),
            contact_email VARCHAR(255),
            contact_full_name VARCHAR(255),
            company_phone VARCHAR(50),
            notification_emails JSONB NOT NULL DEFAULT '[]',
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)

    # ── orders ───────────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE orders (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            ref_id INTEGER NOT NULL UNIQUE,
            status VARCHAR(32) NOT NULL DEFAULT 'New',
            portal_id VARCHAR(64),
            reg VARCHAR(100),
            transport_type VARCHAR(32),
            pickup_date_type VARCHAR(16),
            delivery_date_type VARCHAR(16),
            external_id VARCHAR(64),
            external_status VARCHAR(50),
            tms_created_at TIMESTAMPTZ,
            tms_updated_at TIMESTAMPTZ,
            sync_key VARCHAR(128),
            is_partial_order BOOLEAN NOT NULL DEFAULT false,
            has_claim BOOLEAN NOT NULL DEFAULT false,
            sirva_non_domestic BOOLEAN NOT NULL DEFAULT false,
            awaiting_pickup_confirmation BOOLEAN NOT NULL DEFAULT false,
            awaiting_delivery_confirmation BOOLEAN NOT NULL DEFAULT false,
            agent_email VARCHAR(255),
            customer JSONB NOT NULL DEFAULT '{}',
            schedule JSONB NOT NULL DEFAULT '{}',
            origin JSONB NOT NULL DEFAULT '{}',
            destination JSONB NOT NULL DEFAULT '{}',
            vehicles JSONB NOT NULL DEFAULT '[]',
            total_pricing JSONB NOT NULL DEFAULT '{}',
            agents JSONB NOT NULL DEFAULT '[]',
            notifications JSONB NOT NULL DEFAULT '{}',
            version_id INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE UNIQUE INDEX ix_orders_external_id ON orders (external_id);")
    op.execute("CREATE INDEX ix_orders_portal_id ON orders (portal_id);")
    op.execute("CREATE INDEX ix_orders_status ON orders (status);")
    op.execute("CREATE INDEX ix_orders_tms_updated_at ON orders (tms_updated_at);")
    # Sweep lookups only ever scan the flagged minority
    op.execute("""
        CREATE INDEX ix_orders_awaiting_pickup ON orders (updated_at)
        WHERE awaiting_pickup_confirmation;
    """)
    op.execute("""
        CREATE INDEX ix_orders_awaiting_delivery ON orders (updated_at)
        WHERE awaiting_delivery_confirmation;
    """)

    # ── event_outbox ─────────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE event_outbox (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            event_type VARCHAR(255) NOT NULL,
            aggregate_type VARCHAR(255) NOT NULL,
            aggregate_id VARCHAR(255) NOT NULL,
            payload JSONB NOT NULL DEFAULT '{}',
            status eventstatus NOT NULL DEFAULT 'PENDING',
            retry_count INTEGER NOT NULL DEFAULT 0,
            max_retries INTEGER NOT NULL DEFAULT 3,
            last_error TEXT,
            processed_at TIMESTAMPTZ,
            schema_version INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        );
    """)
    op.execute("CREATE INDEX ix_event_outbox_status ON event_outbox (status);")
    op.execute("""
        CREATE INDEX ix_event_outbox_aggregate ON event_outbox (aggregate_type, aggregate_id);
    """)

    # ── processed_events ─────────────────────────────────────────────────────
    op.execute("""
        CREATE TABLE processed_events (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            event_id UUID NOT NULL UNIQUE,
            event_type VARCHAR(255) NOT NULL,
            handler_name VARCHAR(255) NOT NULL,
            processed_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            expires_at TIMESTAMPTZ NOT NULL
        );
    """)
    op.execute("CREATE INDEX ix_processed_events_expires_at ON processed_events (expires_at);")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS processed_events;")
    op.execute("DROP TABLE IF EXISTS event_outbox;")
    op.execute("DROP TABLE IF EXISTS orders;")
    op.execute("DROP TABLE IF EXISTS portals;")
    op.execute("DROP TYPE IF EXISTS eventstatus;")
