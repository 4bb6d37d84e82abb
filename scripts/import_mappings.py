"""
Setup script: load product -> course, bundle -> components and
bundle name -> course mappings from a JSON file into the configured stores.

File shape:
    {
      "product_courses":   {"<product id>": "<course id>", ...},
      "bundle_components": {"<bundle product id>": ["<product id>", ...], ...},
      "bundle_names":      {"<bundle name>": "<course id>", ...}
    }

Idempotent: unchanged entries are skipped, changed ones overwritten.

Usage: python scripts/import_mappings.py mappings.json [--dry-run]
"""

import argparse
import asyncio
import json
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.config import settings
from app.errors import MappingValidationError
from app.services.mappings import BUNDLE_COMPONENTS, BUNDLE_NAMES, PRODUCT_COURSES, MappingStores

SECTIONS = (PRODUCT_COURSES, BUNDLE_COMPONENTS, BUNDLE_NAMES)


async def upsert_section(store, entries: dict, dry_run: bool) -> int:
    print(f"\n=== {store.name.upper()} ===")
    current = await store.list()
    changed = 0

    for key, value in entries.items():
        existing = await store.get(key)
        if existing == value:
            print(f"  SKIP (unchanged): {key!r}")
            continue
        if dry_run:
            print(f"  WOULD SET: {key!r} -> {value!r}")
            changed += 1
            continue
        try:
            persisted = await store.set(key, value)
        except MappingValidationError as e:
            print(f"  INVALID: {key!r} ({e})")
            continue
        action = "UPDATED" if existing is not None else "CREATED"
        suffix = "" if persisted else " (not persisted!)"
        print(f"  {action}: {key!r} -> {value!r}{suffix}")
        changed += 1

    print(f"  {len(current)} existing, {changed} changed")
    return changed


async def run(path: str, dry_run: bool) -> int:
    with open(path, encoding="utf-8") as fh:
        data = json.load(fh)

    stores = MappingStores.from_settings(settings)
    total = 0
    for section in SECTIONS:
        entries = data.get(section) or {}
        if not isinstance(entries, dict):
            print(f"\n[ERROR] Section {section!r} must be a JSON object")
            return 1
        total += await upsert_section(getattr(stores, section), entries, dry_run)

    print(f"\n[OK] {total} mapping(s) {'would change' if dry_run else 'changed'}.")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Import course mappings from a JSON file")
    parser.add_argument("path", help="JSON file with product_courses / bundle_components / bundle_names")
    parser.add_argument("--dry-run", action="store_true", help="Show what would change without writing")
    args = parser.parse_args()
    sys.exit(asyncio.run(run(args.path, args.dry_run)))


if __name__ == "__main__":
    main()
