#!/usr/bin/env python3
"""
Recompute account types for a tenant's active people.

Uses the built-in patterns plus the tenant's registered patterns, and
persists every difference. This is the bulk version of the account-type
repair that resolution applies to one person at a time.

Run with --dry-run to only print the changes.
"""

import argparse
import sys
from collections import Counter
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from enrichment.services.entity_resolver import resolver_for_tenant
from enrichment.services.errors import StoreError
from enrichment.services.person_entity import PersonStore, get_person_store


def main(argv=None, store: PersonStore = None) -> int:
    parser = argparse.ArgumentParser(description='Recompute stored account types')
    parser.add_argument('--tenant', required=True, help='Tenant id')
    parser.add_argument('--dry-run', action='store_true', help='Print changes without saving')
    args = parser.parse_args(argv)

    store = store or get_person_store()
    resolver = resolver_for_tenant(store, args.tenant)

    people = store.list_active_people(args.tenant)
    print(f"Checking {len(people):,} active people in tenant {args.tenant}")

    changes = Counter()
    failed = 0
    for person in people:
        if not person.primary_email:
            continue
        new_type = resolver.classify(person.primary_email, person.canonical_name)
        if new_type == person.account_type:
            continue

        print(f"  #{person.id} {person.primary_email}: {person.account_type} -> {new_type}")
        changes[(str(person.account_type), str(new_type))] += 1
        if args.dry_run:
            continue

        person.account_type = new_type
        try:
            store.update_person(person)
        except StoreError as e:
            print(f"    failed: {e}")
            failed += 1

    total = sum(changes.values())
    if not total:
        print("All account types are current.")
        return 0

    print(f"\n{'Would change' if args.dry_run else 'Changed'} {total - failed:,} people:")
    for (old, new), count in changes.most_common():
        print(f"  {old} -> {new}: {count:,}")

    return 1 if failed else 0


if __name__ == '__main__':
    sys.exit(main())
