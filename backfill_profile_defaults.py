# backfill_profile_defaults.py
from civicsync.core.config import settings
from civicsync.services.gcp_clients import get_firestore_client
from civicsync.services.profile_ledger import backfill_fields
from civicsync.services.store import FirestoreStore

print("settings.app_id =", settings.app_id)
print("profiles path   =", settings.profiles_path)


def run(store: FirestoreStore, dry_run: bool = False):
    updates = []
    for uid, data in store.stream(settings.profiles_path):
        upd = backfill_fields(data)
        if not upd:
            continue
        if dry_run:
            print(f"[DRY] would update {uid}: {upd}")
        updates.append((uid, upd))

    if dry_run:
        print(f"Scanned {len(updates)} docs needing changes (dry-run)")
        return

    wrote = store.batch_set(settings.profiles_path, updates, merge=True)
    print(f"Updated {wrote} profile docs (written)")


if __name__ == "__main__":
    import argparse
    ap = argparse.ArgumentParser()
    ap.add_argument("--dry-run", action="store_true", help="print changes, don’t write")
    args = ap.parse_args()
    run(FirestoreStore(get_firestore_client()), dry_run=args.dry_run)
