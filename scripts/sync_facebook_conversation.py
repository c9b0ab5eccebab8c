"""Pull Messenger history for one conversation from the command line.

Usage:
    DATABASE_URL=... uv run python scripts/sync_facebook_conversation.py <company_id> <conversation_id>

Runs the same pipeline as POST /conversations/{id}/sync-facebook-messages and
prints the resulting counts. Useful for backfilling after a page reconnect.
"""

from __future__ import annotations

import json
import os
import sys


def main() -> None:
    if len(sys.argv) < 3:
        print("Usage: uv run python scripts/sync_facebook_conversation.py <company_id> <conversation_id>")
        sys.exit(2)

    company_id, conversation_id = sys.argv[1], sys.argv[2]

    if not os.environ.get("DATABASE_URL"):
        print("ERROR: DATABASE_URL not set")
        sys.exit(1)

    # Import after env validation so missing DB doesn't blow up on import
    from inboxly.domain.message_sync import SyncError, sync_facebook_messages
    from inboxly.facebook.graph_client import GraphApiError
    from inboxly.observability.correlation import ensure_correlation_id

    cid = ensure_correlation_id()
    print(f"Syncing conversation_id={conversation_id} (correlation {cid}) ...")

    try:
        result = sync_facebook_messages(company_id=company_id, conversation_id=conversation_id)
    except SyncError as e:
        print(f"ERROR ({e.status_code}): {e.message}")
        sys.exit(1)
    except GraphApiError as e:
        print(f"ERROR (graph {e.kind}, code={e.code}, status={e.status_code}): {e.message}")
        sys.exit(1)

    print(json.dumps(result.to_response(), ensure_ascii=False, indent=2))
    print(
        f"from_customer={result.from_customer} from_page={result.from_page} "
        f"ambiguous_direction={result.ambiguous_direction} by_type={result.by_type}"
    )


if __name__ == "__main__":
    main()
