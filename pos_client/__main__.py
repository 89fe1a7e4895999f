import argparse
import logging
import sys

from .config import ClientSettings
from .entities import ENTITY_TYPES
from .reconciler import SyncReconciler
from .state import AppState


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="pos_client", description="POS till data sync")
    parser.add_argument("command", choices=["sync", "status"])
    parser.add_argument("--env-file", help="Path to a .env file with POS_* settings")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = ClientSettings.from_env(args.env_file)
    state = AppState.from_settings(settings)
    try:
        if args.command == "status":
            for entity in ENTITY_TYPES:
                records, tombstones = state.log(entity.collection).snapshot_for_sync()
                print(f"{entity.collection:<10} {len(records):>6} records  {len(tombstones):>4} pending deletions")
            return 0

        result = SyncReconciler.from_settings(state, settings).request_sync()
        print(result.message)
        return 0 if result.ok else 1
    finally:
        state.store.close()


if __name__ == "__main__":
    sys.exit(main())
