"""initial_logbook_schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

Substations, staff accounts, technicians, lookups, logbook entries with their
technician links, readings and comments, email config, backup history, and the
two daily reporting views.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from models.reports import DAILY_CATEGORY_SQL, DAILY_SUMMARY_SQL


revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'substations',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('substation_code', sa.String(20), nullable=False),
        sa.Column('substation_name', sa.String(100), nullable=False),
        sa.Column('location', sa.String(200), nullable=True),
        sa.Column('voltage_level', sa.String(50), nullable=True),
        sa.Column('installed_capacity', sa.String(50), nullable=True),
        sa.Column('contact_info', sa.String(200), nullable=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('substation_code', name='uq_substations_substation_code'),
    )

    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(50), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(100), nullable=False),
        sa.Column('email', sa.String(100), nullable=False),
        sa.Column('phone', sa.String(20), nullable=True),
        sa.Column('employee_id', sa.String(20), nullable=True),
        sa.Column('role', sa.Enum('admin', 'engineer', name='userrole'), nullable=False),
        sa.Column('substation_id', sa.Integer(),
                  sa.ForeignKey('substations.id', ondelete='RESTRICT',
                                name='fk_users_substation_id_substations'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sa.UniqueConstraint('employee_id', name='uq_users_employee_id'),
        sa.CheckConstraint(
            "(role = 'engineer' AND substation_id IS NOT NULL)"
            " OR (role = 'admin' AND substation_id IS NULL)",
            name='ck_users_role_substation',
        ),
    )

    op.create_table(
        'technicians',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('substation_id', sa.Integer(),
                  sa.ForeignKey('substations.id', ondelete='CASCADE',
                                name='fk_technicians_substation_id_substations'), nullable=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('employee_id', sa.String(20), nullable=False),
        sa.Column('contact_number', sa.String(20), nullable=True),
        sa.Column('email', sa.String(100), nullable=True),
        sa.Column('designation', sa.String(50), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('substation_id', 'employee_id', name='uq_technicians_substation_employee'),
    )

    for table, name_col in (('equipment_types', 'equipment_name'), ('event_categories', 'category_name')):
        op.create_table(
            table,
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column(name_col, sa.String(100), nullable=False),
            sa.Column('description', sa.String(500), nullable=True),
            sa.Column('created_by', sa.Integer(),
                      sa.ForeignKey('users.id', ondelete='SET NULL',
                                    name=f'fk_{table}_created_by_users'), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
            sa.UniqueConstraint(name_col, name=f'uq_{table}_{name_col}'),
        )

    op.create_table(
        'logbook_entries',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('substation_id', sa.Integer(),
                  sa.ForeignKey('substations.id', ondelete='RESTRICT',
                                name='fk_logbook_entries_substation_id_substations'), nullable=False),
        sa.Column('entry_datetime', sa.DateTime(), nullable=False),
        sa.Column('event_category_id', sa.Integer(),
                  sa.ForeignKey('event_categories.id', ondelete='SET NULL',
                                name='fk_logbook_entries_event_category_id_event_categories'), nullable=True),
        sa.Column('equipment_id', sa.Integer(),
                  sa.ForeignKey('equipment_types.id', ondelete='SET NULL',
                                name='fk_logbook_entries_equipment_id_equipment_types'), nullable=True),
        sa.Column('severity', sa.Enum('Normal', 'Warning', 'Critical', name='severity'), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('attachment_path', sa.String(255), nullable=True),
        sa.Column('posted_by_type', sa.Enum('substation', 'engineer', 'technician', name='postedbytype'),
                  nullable=False),
        sa.Column('posted_by_id', sa.Integer(),
                  sa.ForeignKey('users.id', ondelete='SET NULL',
                                name='fk_logbook_entries_posted_by_id_users'), nullable=True),
        sa.Column('send_email_notification', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('email_sent_at', sa.DateTime(), nullable=True),
        sa.Column('is_edited', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('last_edited_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_logbook_entries_substation_datetime', 'logbook_entries',
                    ['substation_id', 'entry_datetime'])
    op.create_index('ix_logbook_entries_severity', 'logbook_entries', ['severity'])

    op.create_table(
        'log_technicians',
        sa.Column('log_id', sa.Integer(),
                  sa.ForeignKey('logbook_entries.id', ondelete='CASCADE',
                                name='fk_log_technicians_log_id_logbook_entries'), primary_key=True),
        sa.Column('technician_id', sa.Integer(),
                  sa.ForeignKey('technicians.id', ondelete='RESTRICT',
                                name='fk_log_technicians_technician_id_technicians'), primary_key=True),
    )

    op.create_table(
        'electrical_parameters',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('log_id', sa.Integer(),
                  sa.ForeignKey('logbook_entries.id', ondelete='CASCADE',
                                name='fk_electrical_parameters_log_id_logbook_entries'), nullable=False),
        sa.Column('voltage_kv', sa.Float(), nullable=True),
        sa.Column('current_a', sa.Float(), nullable=True),
        sa.Column('power_mw', sa.Float(), nullable=True),
        sa.Column('frequency_hz', sa.Float(), nullable=True),
        sa.Column('power_factor', sa.Float(), nullable=True),
        sa.Column('energy_mwh', sa.Float(), nullable=True),
        sa.Column('recorded_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('log_id', name='uq_electrical_parameters_log_id'),
    )

    op.create_table(
        'comments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('log_id', sa.Integer(),
                  sa.ForeignKey('logbook_entries.id', ondelete='CASCADE',
                                name='fk_comments_log_id_logbook_entries'), nullable=False),
        sa.Column('user_id', sa.Integer(),
                  sa.ForeignKey('users.id', ondelete='CASCADE',
                                name='fk_comments_user_id_users'), nullable=False),
        sa.Column('comment_text', sa.Text(), nullable=False),
        sa.Column('is_edited', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_comments_log_created', 'comments', ['log_id', 'created_at'])

    op.create_table(
        'email_config',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('smtp_host', sa.String(255), nullable=False),
        sa.Column('smtp_port', sa.Integer(), nullable=False, server_default='587'),
        sa.Column('smtp_secure', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('smtp_user', sa.String(255), nullable=False, server_default=''),
        sa.Column('smtp_password', sa.String(255), nullable=False, server_default=''),
        sa.Column('from_email', sa.String(255), nullable=False, server_default=''),
        sa.Column('from_name', sa.String(100), nullable=False, server_default=''),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('updated_by', sa.Integer(),
                  sa.ForeignKey('users.id', ondelete='SET NULL',
                                name='fk_email_config_updated_by_users'), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'backup_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('backup_filename', sa.String(255), nullable=False),
        sa.Column('backup_path', sa.String(500), nullable=False, server_default=''),
        sa.Column('backup_size_mb', sa.Float(), nullable=True),
        sa.Column('backup_type', sa.Enum('manual', 'automatic', name='backuptype'), nullable=False),
        sa.Column('status', sa.Enum('success', 'failed', name='backupstatus'), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(),
                  sa.ForeignKey('users.id', ondelete='SET NULL',
                                name='fk_backup_history_created_by_users'), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_backup_history_created', 'backup_history', ['created_at'])

    op.execute(DAILY_SUMMARY_SQL)
    op.execute(DAILY_CATEGORY_SQL)


def downgrade() -> None:
    op.execute("DROP VIEW IF EXISTS v_daily_category_summary")
    op.execute("DROP VIEW IF EXISTS v_daily_summary")

    op.drop_index('ix_backup_history_created', table_name='backup_history')
    op.drop_table('backup_history')
    op.drop_table('email_config')
    op.drop_index('ix_comments_log_created', table_name='comments')
    op.drop_table('comments')
    op.drop_table('electrical_parameters')
    op.drop_table('log_technicians')
    op.drop_index('ix_logbook_entries_severity', table_name='logbook_entries')
    op.drop_index('ix_logbook_entries_substation_datetime', table_name='logbook_entries')
    op.drop_table('logbook_entries')
    op.drop_table('event_categories')
    op.drop_table('equipment_types')
    op.drop_table('technicians')
    op.drop_table('users')
    op.drop_table('substations')

    for enum_name in ('backupstatus', 'backuptype', 'postedbytype', 'severity', 'userrole'):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
