"""Lease records table with store-side expiry."""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_lease_records"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the timeout function, id sequence, lease table and refresh trigger."""
    # To change the timeout later, add a revision that replaces this function
    op.execute(
        "CREATE FUNCTION lease_timeout() "
        "RETURNS interval IMMUTABLE LANGUAGE SQL AS $$ SELECT interval '2 minutes' $$"
    )
    op.execute("CREATE SEQUENCE lease_records_id_seq AS integer")

    op.create_table(
        "lease_records",
        sa.Column(
            "id",
            sa.Integer(),
            primary_key=True,
            server_default=sa.text("nextval('lease_records_id_seq')"),
        ),
        sa.Column(
            "creation",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "expiry",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP + lease_timeout()"),
        ),
        sa.Column("title", sa.Text(), nullable=False, server_default=""),
        sa.Column("refresh_count", sa.Integer(), nullable=False, server_default="0"),
    )
    op.execute("ALTER SEQUENCE lease_records_id_seq OWNED BY lease_records.id")
    op.create_index("idx_lease_records_expiry", "lease_records", ["expiry"])

    op.execute(
        """
        CREATE FUNCTION lease_records_refresh_expiry() RETURNS trigger AS $$
            BEGIN
                NEW.expiry := GREATEST(OLD.expiry, CURRENT_TIMESTAMP + lease_timeout());
                RETURN NEW;
            END;
        $$ LANGUAGE plpgsql
        """
    )
    op.execute(
        "CREATE TRIGGER lease_records_refresh_expiry "
        "BEFORE UPDATE OF refresh_count ON lease_records "
        "FOR EACH ROW EXECUTE FUNCTION lease_records_refresh_expiry()"
    )


def downgrade() -> None:
    """Drop the lease table and its functions."""
    op.drop_index("idx_lease_records_expiry", table_name="lease_records")
    op.drop_table("lease_records")
    op.execute("DROP FUNCTION IF EXISTS lease_records_refresh_expiry()")
    op.execute("DROP FUNCTION IF EXISTS lease_timeout()")
