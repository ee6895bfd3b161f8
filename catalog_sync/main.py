from __future__ import annotations

import argparse
import logging

from catalog_sync.db import Base, engine
from catalog_sync.runner import MODES, SyncRunner


def run_once(supplier_id: int, mode: str | None, keys: list[str] | None = None) -> None:
    Base.metadata.create_all(bind=engine)
    runner = SyncRunner()
    try:
        if keys:
            progress = runner.refresh(supplier_id, keys, mode)
        else:
            progress = runner.run_sync(supplier_id, mode)
    finally:
        runner.shutdown()
    print(
        f"supplier={supplier_id} status={progress.status} total={progress.total_products} "
        f"fetched={progress.fetched_products} saved={progress.saved_products} "
        f"created={progress.created_products} updated={progress.updated_products} errors={progress.errors}"
        + (f" error={progress.error_message}" if progress.error_message else "")
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Supplier catalog sync")
    parser.add_argument("--supplier-id", type=int, required=True)
    parser.add_argument("--mode", default=None, choices=list(MODES))
    parser.add_argument(
        "--product",
        action="append",
        dest="products",
        help="Refresh only this supplier product id (repeatable) instead of a full sync",
    )
    parser.add_argument("--log-level", default="INFO")

    args = parser.parse_args()
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    run_once(supplier_id=args.supplier_id, mode=args.mode, keys=args.products)


if __name__ == "__main__":
    main()
