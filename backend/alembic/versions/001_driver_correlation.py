"""driver_correlation

Revision ID: 001_driver_correlation
Revises:
Create Date: 2025-02-03 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_driver_correlation'
down_revision = None
branch_labels = None
depends_on = None

TELEMETRY_TABLES = ('lytx_safety_events', 'guardian_events', 'mtdata_trip_history')


def upgrade() -> None:
    # Association columns on every telemetry feed
    for table in TELEMETRY_TABLES:
        op.add_column(table, sa.Column('driver_id', sa.String(36), nullable=True))
        op.add_column(table, sa.Column('driver_association_confidence', sa.Float(), nullable=True))
        op.add_column(table, sa.Column('driver_association_method', sa.String(), nullable=True))
        op.add_column(table, sa.Column('driver_association_updated_at', sa.DateTime(timezone=True), nullable=True))
        op.create_foreign_key(f'fk_{table}_driver_id', table, 'drivers', ['driver_id'], ['id'])
        op.create_check_constraint(
            f'ck_{table}_confidence_range',
            table,
            'driver_association_confidence IS NULL '
            'OR (driver_association_confidence >= 0 AND driver_association_confidence <= 1)'
        )
        op.create_index(f'ix_{table}_driver_id', table, ['driver_id'])
        # Only the rows the correlation runner still has to look at
        op.create_index(
            f'idx_{table}_unresolved',
            table,
            ['id'],
            postgresql_where=sa.text(
                "driver_id IS NULL "
                "AND (driver_association_method IS NULL OR driver_association_method <> 'manual_assignment')"
            )
        )

    op.create_index('idx_drivers_fleet_name', 'drivers', ['fleet', 'last_name', 'first_name'])

    op.create_table(
        'driver_correlation_runs',
        sa.Column('id', sa.Integer(), nullable=False, autoincrement=True),
        sa.Column('job_type', sa.String(length=20), nullable=False, server_default='driver_correlation'),
        sa.Column('status', sa.String(length=9), nullable=False, server_default='RUNNING'),
        sa.Column('dry_run', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('started_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scope_sources', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('scope_driver_id', sa.String(), nullable=True),
        sa.Column('scope_date_from', sa.Date(), nullable=True),
        sa.Column('scope_date_to', sa.Date(), nullable=True),
        sa.Column('stats', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('error_message', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_driver_correlation_runs_started', 'driver_correlation_runs', ['started_at'])


def downgrade() -> None:
    op.drop_index('idx_driver_correlation_runs_started', table_name='driver_correlation_runs')
    op.drop_table('driver_correlation_runs')
    op.drop_index('idx_drivers_fleet_name', table_name='drivers')

    for table in TELEMETRY_TABLES:
        op.drop_index(f'idx_{table}_unresolved', table_name=table)
        op.drop_index(f'ix_{table}_driver_id', table_name=table)
        op.drop_constraint(f'ck_{table}_confidence_range', table, type_='check')
        op.drop_constraint(f'fk_{table}_driver_id', table, type_='foreignkey')
        op.drop_column(table, 'driver_association_updated_at')
        op.drop_column(table, 'driver_association_method')
        op.drop_column(table, 'driver_association_confidence')
        op.drop_column(table, 'driver_id')
