from __future__ import annotations

import argparse
import json
from typing import Any, Dict, List, Type

from .models.account import AdminAccount, SubAdminAccount, UserAccount
from .models.audit import AuditEvent
from .models.base import DBSerializableModel


MODEL_REGISTRY: List[Type[DBSerializableModel]] = [
    AdminAccount,
    SubAdminAccount,
    UserAccount,
    AuditEvent,
]


def generate_logical_schema() -> Dict[str, Any]:
    """
    Generate a backend-agnostic logical schema for all registered models.
    This is the single source of truth for the stored document shapes.
    """
    return {model.collection_name: model.db_schema() for model in MODEL_REGISTRY}


def render_index_spec(schema: Dict[str, Any]) -> Dict[str, List[Dict[str, Any]]]:
    """
    Unique index definitions per collection, in the form passed to
    `create_index` (the same indexes `MongoDBManager.ensure_indexes` builds).
    """
    indexes: Dict[str, List[Dict[str, Any]]] = {}
    for collection, spec in schema.items():
        indexes[collection] = [
            {"key": {field: 1}, "name": f"{field}_unique", "unique": True}
            for field in spec.get("unique", [])
        ]
    return indexes


def render_nosql_schema(schema: Dict[str, Any]) -> str:
    """
    Render a JSON representation that can be used to configure validators
    and indexes for MongoDB.
    """
    document = {
        "collections": schema,
        "indexes": render_index_spec(schema),
    }
    return json.dumps(document, indent=2, default=str)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Generate the document schema of the credit hierarchy store."
    )
    parser.add_argument(
        "--indexes-only",
        action="store_true",
        help="Only print the unique index specification.",
    )
    args = parser.parse_args()

    schema = generate_logical_schema()

    if args.indexes_only:
        print(json.dumps(render_index_spec(schema), indent=2))
    else:
        print(render_nosql_schema(schema))


if __name__ == "__main__":
    main()
