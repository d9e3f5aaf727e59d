import sys

from alembic.config import Config
from alembic.script import ScriptDirectory
from alembic.runtime.migration import MigrationContext
from sqlalchemy import text

from scheduling_core.config import settings
from scheduling_core.db import SessionLocal, engine
from scheduling_core.core.contract_status import normalize_contract_status
from scheduling_core.integrations.client_factory import get_profile_client, get_wallet_client
from scheduling_core.integrations.clients import RemoteProfileClient, RemoteWalletClient
from scheduling_core.models import Contract, RefundInstruction, RefundStatus


GREEN = '\033[32m'
RED = '\033[31m'
RESET = '\033[0m'


def run_check(name, fn):
    try:
        message = fn() or ''
        suffix = f' - {message}' if message else ''
        print(f'{GREEN}PASS{RESET} {name}{suffix}')
        return True
    except Exception as exc:
        print(f'{RED}FAIL{RESET} {name} - {exc}')
        return False


def check_db_connectivity_and_write():
    with engine.begin() as conn:
        conn.execute(text('SELECT 1'))
        conn.execute(text('CREATE TABLE IF NOT EXISTS _healthcheck_probe (id INTEGER PRIMARY KEY, note TEXT)'))
        conn.execute(text("INSERT INTO _healthcheck_probe (note) VALUES ('probe')"))
        conn.execute(text("DELETE FROM _healthcheck_probe WHERE note='probe'"))
        conn.execute(text('DROP TABLE IF EXISTS _healthcheck_probe'))
    return 'connect + write ok'


def check_alembic_head():
    cfg = Config('alembic.ini')
    script = ScriptDirectory.from_config(cfg)
    heads = set(script.get_heads())
    if not heads:
        raise RuntimeError('No alembic heads found in repository')

    with engine.connect() as conn:
        current = MigrationContext.configure(conn).get_current_revision()

    if current is None:
        raise RuntimeError('No migration version in DB (run alembic upgrade head)')
    if current not in heads:
        raise RuntimeError(f'DB revision {current} is not at head {sorted(heads)}')
    return f'current={current}'


def check_collaborator_settings():
    problems = []
    if isinstance(get_wallet_client(), RemoteWalletClient) and not settings.wallet_service_url.strip():
        problems.append('WALLET_SERVICE_URL')
    if isinstance(get_profile_client(), RemoteProfileClient) and not settings.profile_service_url.strip():
        problems.append('PROFILE_SERVICE_URL')
    if problems:
        raise RuntimeError(f'Remote mode without URL: {", ".join(problems)}')
    return f'wallet={settings.wallet_mode} profile={settings.profile_mode}'


def check_contract_statuses_recognized():
    db = SessionLocal()
    try:
        rows = db.query(Contract.id, Contract.status).all()
        for contract_id, status in rows:
            normalize_contract_status(status, contract_id=contract_id)
        return f'contracts={len(rows)}'
    finally:
        db.close()


def check_undelivered_refunds():
    db = SessionLocal()
    try:
        failed = db.query(RefundInstruction).filter(RefundInstruction.status == RefundStatus.FAILED.value).count()
        if failed:
            raise RuntimeError(f'{failed} refund instruction(s) failed delivery; redeliver via POST /refunds/<id>/redeliver')
        return 'no failed refunds'
    finally:
        db.close()


def main():
    checks = [
        ('Database connectivity and write access', check_db_connectivity_and_write),
        ('Alembic migration status at head', check_alembic_head),
        ('Collaborator settings consistent', check_collaborator_settings),
        ('Contract statuses recognized', check_contract_statuses_recognized),
        ('Refund instructions delivered', check_undelivered_refunds),
    ]

    all_ok = True
    for name, fn in checks:
        all_ok = run_check(name, fn) and all_ok

    if not all_ok:
        sys.exit(1)
    sys.exit(0)


if __name__ == '__main__':
    main()
