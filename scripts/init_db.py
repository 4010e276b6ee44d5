"""Creates the data directory and the empty CSV tables."""
import os
import sys

import pandas as pd

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from jinnie.config import settings  # noqa: E402
from jinnie.database import db  # noqa: E402

TABLES = {
    "users": ["id", "username", "email", "email_verified", "password_hash", "full_name", "provider", "created_at"],
    "wishlists": [
        "id", "user_id", "name", "description", "visibility", "share_token", "slug", "username",
        "tags", "wish_count", "reserved_count", "created_at", "updated_at",
    ],
    "wishes": [
        "id", "title", "wishlist_id", "description", "url", "images", "notes", "price", "currency",
        "priority", "quantity", "status", "reserved_by", "reserved_by_uid", "reserved_at",
        "reserved_message", "reserver_name", "purchased_by", "purchased_at", "created_at",
        "updated_at", "version", "status_history",
    ],
}


os.makedirs(settings.DATA_DIR, exist_ok=True)

for table, columns in TABLES.items():
    path = db.path_for(table)
    if not path.exists():
        pd.DataFrame(columns=columns).to_csv(path, index=False)
        print(f"Created {path}")
    else:
        print(f"{path} already exists")
