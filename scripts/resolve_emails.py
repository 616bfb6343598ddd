#!/usr/bin/env python3
"""
Resolve email addresses to people from the command line.

Each argument is an address, optionally followed by ":Display Name":

    python scripts/resolve_emails.py --tenant acme "jsmith@acme.com:John Smith" noreply@github.com

By default people are created when missing. With --dry-run only existing
people are looked up and nothing is written.
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from enrichment.services.entity_resolver import resolver_for_tenant
from enrichment.services.errors import EntityError, FilterBlockedError
from enrichment.services.person_entity import PersonStore, get_person_store
from enrichment.utils.deadline import Deadline


def parse_target(arg: str) -> tuple[str, str]:
    """Split "email:Display Name" into (email, display name)."""
    email, _, name = arg.partition(":")
    return email.strip(), name.strip()


def main(argv=None, store: PersonStore = None) -> int:
    parser = argparse.ArgumentParser(description='Resolve email addresses to people')
    parser.add_argument('targets', nargs='+', help='email or "email:Display Name"')
    parser.add_argument('--tenant', required=True, help='Tenant id')
    parser.add_argument('--dry-run', action='store_true', help='Look up only, never create')
    parser.add_argument('--timeout', type=float, default=None, help='Per-address timeout in seconds')
    args = parser.parse_args(argv)

    store = store or get_person_store()
    resolver = resolver_for_tenant(store, args.tenant)

    failures = 0
    for target in args.targets:
        email, name = parse_target(target)
        deadline = Deadline(args.timeout) if args.timeout is not None else None
        try:
            if args.dry_run:
                result = resolver.resolve(args.tenant, email, deadline=deadline)
            else:
                result = resolver.resolve_or_create(args.tenant, email, name, deadline=deadline)
        except FilterBlockedError as e:
            print(f"  BLOCKED  {email}: {e}")
            continue
        except EntityError as e:
            print(f"  ERROR    {email}: {e}")
            failures += 1
            continue

        if result is None:
            print(f"  MISSING  {email}")
            continue

        person = result.person
        marker = "NEW" if result.is_new else result.source.upper()
        print(
            f"  {marker:<8} {email} -> #{person.id} {person.canonical_name} "
            f"[{person.account_type}, confidence {result.confidence:.2f}]"
        )

    return 1 if failures else 0


if __name__ == '__main__':
    sys.exit(main())
