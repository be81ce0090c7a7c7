"""Create an admin API key and print the raw token once."""
from __future__ import annotations

import argparse

from milestone_escrow.db import init_engine, session_scope
from milestone_escrow.models.api_key import ApiKey, ApiScope
from milestone_escrow.utils.apikey import gen_key


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--name", default="ops-admin-key")
    args = parser.parse_args()

    init_engine()
    raw_token, prefix, key_hash = gen_key()

    with session_scope() as db:
        api_key = ApiKey(
            name=args.name,
            prefix=prefix,
            key_hash=key_hash,
            scope=ApiScope.admin,
            is_active=True,
        )
        db.add(api_key)
        db.commit()
        db.refresh(api_key)

        print("Admin API key created. It will not be shown again:")
        print(f"    Authorization: Bearer {raw_token}")
        print(f"(DB id: {api_key.id}, scope: {api_key.scope.value})")


if __name__ == "__main__":
    main()
