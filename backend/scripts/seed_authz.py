#!/usr/bin/env python
"""Seed the global role permission defaults (idempotent).

    python backend/scripts/seed_authz.py                  # insert missing defaults
    python backend/scripts/seed_authz.py --show-roles     # also print a per-role summary
    python backend/scripts/seed_authz.py --dry-run        # report what would be inserted, then roll back
    python backend/scripts/seed_authz.py --export-json roles.json

Existing entries, including explicit denies, are never touched.
"""
from __future__ import annotations
import os, sys, argparse, json, hashlib
from sqlalchemy import inspect

sys.path.append(os.path.abspath('backend'))

from cmms import create_app, get_db  # type: ignore
from cmms.models.authz import Base
from seeds.permissions_roles import ensure_role_defaults, role_permission_map


def print_role_summary(mapping):
    if not mapping:
        print("[INFO] No role defaults present.")
        return
    width = max(len(r) for r in mapping)
    print(f"{'Role'.ljust(width)} | Keys  | First keys")
    print('-' * (width + 40))
    for role, keys in sorted(mapping.items()):
        print(f"{role.ljust(width)} | {str(len(keys)).rjust(5)} | {', '.join(keys[:6])}")


def export_payload(mapping, dry_run: bool):
    canonical = json.dumps(mapping, sort_keys=True, separators=(',', ':'))
    return {
        'roles': mapping,
        'meta': {
            'entries_total': sum(len(v) for v in mapping.values()),
            'roles_checksum_sha256': hashlib.sha256(canonical.encode('utf-8')).hexdigest(),
            'dry_run': dry_run,
        },
    }


def write_export(target: str, payload):
    text = json.dumps(payload, indent=2, sort_keys=True)
    if target == '-':
        print(text)
        return
    with open(target, 'w', encoding='utf-8') as fh:
        fh.write(text + '\n')
    print(f"[INFO] Wrote {target}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Seed global role permission defaults")
    p.add_argument('--show-roles', action='store_true', help='Print a per-role summary after seeding')
    p.add_argument('--dry-run', action='store_true', help='Roll back instead of committing')
    p.add_argument('--export-json', nargs='?', const='-', metavar='FILE',
                   help='Write the role -> keys map as JSON (stdout when FILE is omitted)')
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    app = create_app()
    with app.app_context():
        session = get_db()
        engine = session.get_bind()
        if not inspect(engine).has_table('role_permissions'):
            # Bootstrap only; real environments run `alembic upgrade head`
            Base.metadata.create_all(engine)
        try:
            created = ensure_role_defaults(session)
            session.flush()
            mapping = role_permission_map(session)
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] {created} role entr{'y' if created == 1 else 'ies'} would be created")
            else:
                session.commit()
                print(f"[DONE] {created} role entr{'y' if created == 1 else 'ies'} created")
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
    if args.show_roles:
        print('\nRoles:')
        print_role_summary(mapping)
    if args.export_json is not None:
        write_export(args.export_json, export_payload(mapping, args.dry_run))


if __name__ == '__main__':
    main()
