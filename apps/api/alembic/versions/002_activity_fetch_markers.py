"""activity fetch markers

Revision ID: 002
Revises: 001
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Set once Strava has answered for an activity's detail / streams, even
    # when the answer had no calories or no streams.
    op.add_column('activity', sa.Column('details_fetched_at', sa.DateTime(timezone=True), nullable=True))
    op.add_column('activity', sa.Column('streams_checked_at', sa.DateTime(timezone=True), nullable=True))


def downgrade() -> None:
    op.drop_column('activity', 'streams_checked_at')
    op.drop_column('activity', 'details_fetched_at')
