"""
Reference Data Loader

Loads parties, politicians and contributor profiles from
reference/politicians.json into a StatementStore.

This allows:
- PRs to be readable (JSON diffs instead of Python code changes)
- Every environment to share the same politician ids
- Re-running the load safely (rows are upserted by stable id)

Usage:
    from reference.loader import load_reference_data
    result = load_reference_data(store)
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional
from uuid import UUID, uuid5

from speechkarma.db import InMemoryStatementStore, StatementStore, StoreError
from speechkarma.schemas import AuthorSummary, PartySummary, PoliticianSummary


# Reference directory
REFERENCE_DIR = Path(__file__).parent
DEFAULT_FILE = "politicians.json"


def load_reference_file(filename: str = DEFAULT_FILE) -> dict:
    """Load a reference data file."""
    path = REFERENCE_DIR / filename
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def stable_uuid(namespace: UUID, reference_id: str) -> UUID:
    """Generate a stable UUID from a namespace and reference ID."""
    return uuid5(namespace, f"speechkarma:{reference_id}")


@dataclass
class LoadResult:
    """Result of loading reference data."""
    store: StatementStore
    parties: dict[str, UUID] = field(default_factory=dict)
    politicians: dict[str, UUID] = field(default_factory=dict)
    contributors: dict[str, UUID] = field(default_factory=dict)
    errors: list[tuple[str, str]] = field(default_factory=list)  # (reference_id, message)


def load_reference_data(
    store: Optional[StatementStore] = None,
    filename: str = DEFAULT_FILE,
    verbose: bool = True,
) -> LoadResult:
    """
    Upsert all reference rows into the store.

    Args:
        store: Target store. Creates an InMemoryStatementStore if None.
        filename: File under reference/ to read.
        verbose: Print progress messages.

    Returns:
        LoadResult with the stable ids assigned to each reference id.
    """
    if store is None:
        store = InMemoryStatementStore()

    def log(msg: str):
        if verbose:
            print(msg)

    data = load_reference_file(filename)
    namespace = UUID(data["namespace"])
    result = LoadResult(store=store)

    log("=" * 60)
    log(f"Loading reference data from {filename}")
    log("=" * 60)

    parties: dict[str, PartySummary] = {}
    for entry in data.get("parties", []):
        ref_id = entry["reference_id"]
        try:
            party = PartySummary(
                id=stable_uuid(namespace, ref_id),
                name=entry["name"],
                abbreviation=entry.get("abbreviation"),
                color_hex=entry.get("color_hex"),
            )
            store.save_party(party)
            parties[ref_id] = party
            result.parties[ref_id] = party.id
            log(f"  ✓ Party {party.name}")
        except (KeyError, ValueError, StoreError) as e:
            result.errors.append((ref_id, str(e)))
            log(f"  ✗ Party {ref_id}: {e}")

    for entry in data.get("politicians", []):
        ref_id = entry["reference_id"]
        try:
            party = parties.get(entry["party"])
            if party is None:
                raise ValueError(f"unknown party {entry['party']}")
            politician = PoliticianSummary(
                id=stable_uuid(namespace, ref_id),
                first_name=entry["first_name"],
                last_name=entry["last_name"],
                party=party,
            )
            store.save_politician(politician)
            result.politicians[ref_id] = politician.id
            log(f"  ✓ Politician {politician.full_name}")
        except (KeyError, ValueError, StoreError) as e:
            result.errors.append((ref_id, str(e)))
            log(f"  ✗ Politician {ref_id}: {e}")

    for entry in data.get("contributors", []):
        ref_id = entry["reference_id"]
        try:
            profile = AuthorSummary(
                id=stable_uuid(namespace, ref_id),
                display_name=entry["display_name"],
            )
            store.save_profile(profile)
            result.contributors[ref_id] = profile.id
            log(f"  ✓ Contributor {profile.display_name}")
        except (KeyError, ValueError, StoreError) as e:
            result.errors.append((ref_id, str(e)))
            log(f"  ✗ Contributor {ref_id}: {e}")

    log("\n" + "=" * 60)
    log(
        f"Loaded {len(result.parties)} parties, {len(result.politicians)} politicians, "
        f"{len(result.contributors)} contributors"
    )
    if result.errors:
        log(f"Errors: {len(result.errors)}")
        for ref_id, err in result.errors:
            log(f"  - {ref_id}: {err}")

    return result


def main():
    """Run as standalone script."""
    import sys
    sys.stdout.reconfigure(encoding='utf-8')

    result = load_reference_data(verbose=True)

    print("\nPoliticians:")
    for ref_id, politician_id in result.politicians.items():
        print(f"  {ref_id}: {politician_id}")


if __name__ == "__main__":
    main()
