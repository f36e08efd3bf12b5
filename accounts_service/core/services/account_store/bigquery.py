"""
BigQuery-backed account store.

Tables (one dataset, rows keyed by tenant_id):
- ``accounts``: one row per account, ``version`` guards concurrent updates
- ``account_relationships``: one row per relationship

Writes made inside ``transaction()`` are buffered and flushed on exit as a
single multi-statement script wrapped in BEGIN/COMMIT TRANSACTION. Reads
inside the block see the buffered writes. Every account update is guarded
by ``version``; a lost race aborts the script with ``version_conflict`` and
surfaces as ConcurrentModificationError.
"""

import contextvars
import json
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from google.cloud.bigquery import ArrayQueryParameter, ScalarQueryParameter

from accounts_service.app.config import get_settings
from accounts_service.app.models import Account, AccountRelationship, RelationshipType
from accounts_service.core.engine.bq_client import BigQueryClient, get_bigquery_client
from accounts_service.core.services.account_store.base import (
    AccountRepository,
    AccountStore,
    RelationshipRepository,
)

logger = logging.getLogger(__name__)

ACCOUNTS_TABLE = "accounts"
RELATIONSHIPS_TABLE = "account_relationships"

# column -> BigQuery scalar type; tags is the only ARRAY column
ACCOUNT_COLUMNS: Dict[str, str] = {
    "id": "STRING",
    "tenant_id": "STRING",
    "name": "STRING",
    "account_number": "STRING",
    "account_type": "STRING",
    "industry": "STRING",
    "annual_revenue": "FLOAT64",
    "employee_count": "INT64",
    "website": "STRING",
    "phone": "STRING",
    "fax": "STRING",
    "billing_address": "STRING",
    "shipping_address": "STRING",
    "description": "STRING",
    "status": "STRING",
    "tags": "ARRAY<STRING>",
    "custom_fields": "STRING",
    "parent_account_id": "STRING",
    "hierarchy_level": "INT64",
    "hierarchy_path": "STRING",
    "territory_id": "STRING",
    "owner_id": "STRING",
    "created_at": "TIMESTAMP",
    "updated_at": "TIMESTAMP",
    "created_by": "STRING",
    "updated_by": "STRING",
    "version": "INT64",
}

RELATIONSHIP_COLUMNS: Dict[str, str] = {
    "id": "STRING",
    "tenant_id": "STRING",
    "from_account_id": "STRING",
    "to_account_id": "STRING",
    "relationship_type": "STRING",
    "description": "STRING",
    "start_date": "DATE",
    "end_date": "DATE",
    "is_active": "BOOL",
    "strength": "INT64",
    "custom_fields": "STRING",
    "created_at": "TIMESTAMP",
    "updated_at": "TIMESTAMP",
    "created_by": "STRING",
    "updated_by": "STRING",
}

JSON_COLUMNS = ("billing_address", "shipping_address", "custom_fields")


# ==============================================================================
# Row conversion
# ==============================================================================

def account_to_row(account: Account) -> Dict[str, Any]:
    row = account.model_dump(mode="json")
    for column in JSON_COLUMNS:
        value = row.get(column)
        row[column] = json.dumps(value) if value not in (None, {}) else None
    row["created_at"] = account.created_at
    row["updated_at"] = account.updated_at
    return row


def row_to_account(row: Dict[str, Any]) -> Account:
    data = dict(row)
    for column in JSON_COLUMNS:
        value = data.get(column)
        data[column] = json.loads(value) if value else None
    if data.get("custom_fields") is None:
        data["custom_fields"] = {}
    data["tags"] = list(data.get("tags") or [])
    return Account.model_validate(data)


def relationship_to_row(relationship: AccountRelationship) -> Dict[str, Any]:
    row = relationship.model_dump(mode="json")
    row["custom_fields"] = json.dumps(row["custom_fields"]) if row.get("custom_fields") else None
    row["start_date"] = relationship.start_date
    row["end_date"] = relationship.end_date
    row["created_at"] = relationship.created_at
    row["updated_at"] = relationship.updated_at
    return row


def row_to_relationship(row: Dict[str, Any]) -> AccountRelationship:
    data = dict(row)
    data["custom_fields"] = json.loads(data["custom_fields"]) if data.get("custom_fields") else {}
    return AccountRelationship.model_validate(data)


def _parameter(name: str, bq_type: str, value: Any):
    if bq_type.startswith("ARRAY<"):
        return ArrayQueryParameter(name, bq_type[len("ARRAY<"):-1], list(value or []))
    return ScalarQueryParameter(name, bq_type, value)


# ==============================================================================
# Transaction buffer
# ==============================================================================

@dataclass
class _PendingWrites:
    statements: List[str] = field(default_factory=list)
    parameters: List[Any] = field(default_factory=list)
    # (tenant_id, id) -> latest record, None once deleted
    accounts: Dict[Tuple[str, str], Optional[Account]] = field(default_factory=dict)
    relationships: Dict[Tuple[str, str], Optional[AccountRelationship]] = field(default_factory=dict)
    depth: int = 0

    def add(self, sql: str, params: Dict[str, Tuple[str, Any]]) -> None:
        """Append a statement, suffixing parameter names so they stay unique in the script."""
        n = len(self.statements)
        for name, (bq_type, value) in params.items():
            sql = sql.replace(f"@{name}__", f"@{name}_{n}")
            self.parameters.append(_parameter(f"{name}_{n}", bq_type, value))
        self.statements.append(sql)


_current_tx: contextvars.ContextVar[Optional[_PendingWrites]] = contextvars.ContextVar(
    "accounts_bq_transaction", default=None
)


class _BigQueryRepositoryBase:

    def __init__(self, store: "BigQueryAccountStore"):
        self._store = store

    @property
    def bq(self) -> BigQueryClient:
        return self._store.bq


class _BigQueryAccountRepository(_BigQueryRepositoryBase, AccountRepository):

    def _select(self, where: str, params: List[Any]) -> List[Account]:
        sql = (
            f"SELECT * FROM `{self._store.accounts_table}` "
            f"WHERE tenant_id = @tenant_id AND ({where}) "
            f"ORDER BY created_at, id"
        )
        return [row_to_account(r) for r in self.bq.query(sql, params)]

    def _overlay(
        self, tenant_id: str, rows: List[Account], predicate: Callable[[Account], bool]
    ) -> List[Account]:
        tx = _current_tx.get()
        if tx is None:
            return rows
        result = {a.id: a for a in rows}
        for (tid, aid), pending in tx.accounts.items():
            if tid != tenant_id:
                continue
            result.pop(aid, None)
            if pending is not None and predicate(pending):
                result[aid] = pending.model_copy(deep=True)
        return list(result.values())

    def _find(self, tenant_id: str, where: str, params: List[Any], predicate: Callable[[Account], bool]) -> List[Account]:
        params = [ScalarQueryParameter("tenant_id", "STRING", tenant_id)] + params
        return self._overlay(tenant_id, self._select(where, params), predicate)

    def find_by_id(self, tenant_id: str, account_id: str) -> Optional[Account]:
        rows = self._find(
            tenant_id, "id = @id",
            [ScalarQueryParameter("id", "STRING", account_id)],
            lambda a: a.id == account_id,
        )
        return rows[0] if rows else None

    def find_by_tenant(self, tenant_id: str) -> List[Account]:
        return self._find(tenant_id, "TRUE", [], lambda a: True)

    def find_by_parent(self, tenant_id: str, parent_id: Optional[str]) -> List[Account]:
        if parent_id is None:
            return self._find(tenant_id, "parent_account_id IS NULL", [], lambda a: a.parent_account_id is None)
        return self._find(
            tenant_id, "parent_account_id = @parent_id",
            [ScalarQueryParameter("parent_id", "STRING", parent_id)],
            lambda a: a.parent_account_id == parent_id,
        )

    def find_exact_matches(
        self,
        tenant_id: str,
        name: Optional[str],
        website: Optional[str],
        phone: Optional[str],
        exclude_id: Optional[str] = None,
    ) -> List[Account]:
        conditions = []
        params = []
        for column, value in (("name", name), ("website", website), ("phone", phone)):
            if value:
                conditions.append(f"{column} = @{column}")
                params.append(ScalarQueryParameter(column, "STRING", value))
        if not conditions:
            return []

        where = "(" + " OR ".join(conditions) + ")"
        if exclude_id is not None:
            where += " AND id != @exclude_id"
            params.append(ScalarQueryParameter("exclude_id", "STRING", exclude_id))

        def matches(a: Account) -> bool:
            if exclude_id is not None and a.id == exclude_id:
                return False
            return bool((name and a.name == name) or (website and a.website == website)
                        or (phone and a.phone == phone))

        return self._find(tenant_id, where, params, matches)

    def find_by_name_containing(self, tenant_id: str, name_part: str) -> List[Account]:
        needle = name_part.lower()
        return self._find(
            tenant_id, "STRPOS(LOWER(name), LOWER(@name_part)) > 0",
            [ScalarQueryParameter("name_part", "STRING", name_part)],
            lambda a: needle in (a.name or "").lower(),
        )

    def exists_by_account_number(
        self, tenant_id: str, account_number: str, exclude_id: Optional[str] = None
    ) -> bool:
        where = "account_number = @account_number"
        params = [ScalarQueryParameter("account_number", "STRING", account_number)]
        if exclude_id is not None:
            where += " AND id != @exclude_id"
            params.append(ScalarQueryParameter("exclude_id", "STRING", exclude_id))
        rows = self._find(
            tenant_id, where, params,
            lambda a: a.account_number == account_number and a.id != exclude_id,
        )
        return bool(rows)

    def save(self, account: Account) -> Account:
        expected_version = account.version
        now = datetime.now(timezone.utc)
        if account.created_at is None:
            account.created_at = now
        account.updated_at = now
        account.version = expected_version + 1

        row = account_to_row(account)
        params = {col: (bq_type, row.get(col)) for col, bq_type in ACCOUNT_COLUMNS.items()}
        table = self._store.accounts_table

        if expected_version == 0:
            columns = ", ".join(ACCOUNT_COLUMNS)
            values = ", ".join(f"@{col}__" for col in ACCOUNT_COLUMNS)
            sql = f"INSERT INTO `{table}` ({columns}) VALUES ({values})"
        else:
            params["expected_version"] = ("INT64", expected_version)
            assignments = ", ".join(
                f"{col} = @{col}__" for col in ACCOUNT_COLUMNS if col not in ("id", "tenant_id", "created_at")
            )
            sql = (
                f"UPDATE `{table}` SET {assignments} "
                f"WHERE tenant_id = @tenant_id__ AND id = @id__ AND version = @expected_version__;\n"
                f"IF @@row_count = 0 THEN "
                f"RAISE USING MESSAGE = 'version_conflict:{account.id}'; END IF"
            )

        self._store.write(sql, params, account_key=(account.tenant_id, account.id), account=account)
        return account

    def delete(self, account: Account) -> None:
        sql = f"DELETE FROM `{self._store.accounts_table}` WHERE tenant_id = @tenant_id__ AND id = @id__"
        params = {"tenant_id": ("STRING", account.tenant_id), "id": ("STRING", account.id)}
        self._store.write(sql, params, account_key=(account.tenant_id, account.id), account=None)


class _BigQueryRelationshipRepository(_BigQueryRepositoryBase, RelationshipRepository):

    def _find(
        self,
        tenant_id: str,
        where: str,
        params: List[Any],
        predicate: Callable[[AccountRelationship], bool],
    ) -> List[AccountRelationship]:
        sql = (
            f"SELECT * FROM `{self._store.relationships_table}` "
            f"WHERE tenant_id = @tenant_id AND ({where}) ORDER BY created_at, id"
        )
        params = [ScalarQueryParameter("tenant_id", "STRING", tenant_id)] + params
        rows = [row_to_relationship(r) for r in self.bq.query(sql, params)]

        tx = _current_tx.get()
        if tx is None:
            return rows
        result = {r.id: r for r in rows}
        for (tid, rid), pending in tx.relationships.items():
            if tid != tenant_id:
                continue
            result.pop(rid, None)
            if pending is not None and predicate(pending):
                result[rid] = pending.model_copy(deep=True)
        return list(result.values())

    def find_by_from(self, tenant_id: str, account_id: str) -> List[AccountRelationship]:
        return self._find(
            tenant_id, "from_account_id = @account_id",
            [ScalarQueryParameter("account_id", "STRING", account_id)],
            lambda r: r.from_account_id == account_id,
        )

    def find_by_to(self, tenant_id: str, account_id: str) -> List[AccountRelationship]:
        return self._find(
            tenant_id, "to_account_id = @account_id",
            [ScalarQueryParameter("account_id", "STRING", account_id)],
            lambda r: r.to_account_id == account_id,
        )

    def find_by_tenant(self, tenant_id: str) -> List[AccountRelationship]:
        return self._find(tenant_id, "TRUE", [], lambda r: True)

    def find_existing(
        self,
        tenant_id: str,
        from_id: str,
        to_id: str,
        relationship_type: RelationshipType,
    ) -> Optional[AccountRelationship]:
        rows = self._find(
            tenant_id,
            "from_account_id = @from_id AND to_account_id = @to_id "
            "AND relationship_type = @relationship_type AND is_active",
            [
                ScalarQueryParameter("from_id", "STRING", from_id),
                ScalarQueryParameter("to_id", "STRING", to_id),
                ScalarQueryParameter("relationship_type", "STRING", relationship_type.value),
            ],
            lambda r: (r.from_account_id == from_id and r.to_account_id == to_id
                       and r.relationship_type == relationship_type and r.is_active),
        )
        return rows[0] if rows else None

    def save(self, relationship: AccountRelationship) -> AccountRelationship:
        now = datetime.now(timezone.utc)
        if relationship.created_at is None:
            relationship.created_at = now
        relationship.updated_at = now

        row = relationship_to_row(relationship)
        params = {col: (bq_type, row.get(col)) for col, bq_type in RELATIONSHIP_COLUMNS.items()}
        columns = ", ".join(RELATIONSHIP_COLUMNS)
        values = ", ".join(f"@{col}__" for col in RELATIONSHIP_COLUMNS)
        assignments = ", ".join(
            f"{col} = @{col}__" for col in RELATIONSHIP_COLUMNS if col not in ("id", "tenant_id", "created_at")
        )
        sql = (
            f"MERGE `{self._store.relationships_table}` T "
            f"USING (SELECT @tenant_id__ AS tenant_id, @id__ AS id) S "
            f"ON T.tenant_id = S.tenant_id AND T.id = S.id "
            f"WHEN MATCHED THEN UPDATE SET {assignments} "
            f"WHEN NOT MATCHED THEN INSERT ({columns}) VALUES ({values})"
        )
        self._store.write(
            sql, params,
            relationship_key=(relationship.tenant_id, relationship.id),
            relationship=relationship,
        )
        return relationship

    def delete_all_for_account(self, tenant_id: str, account_id: str) -> int:
        doomed = {r.id: r for r in self.find_by_from(tenant_id, account_id) + self.find_by_to(tenant_id, account_id)}
        if not doomed:
            return 0
        sql = (
            f"DELETE FROM `{self._store.relationships_table}` "
            f"WHERE tenant_id = @tenant_id__ AND id IN UNNEST(@ids__)"
        )
        params = {"tenant_id": ("STRING", tenant_id), "ids": ("ARRAY<STRING>", list(doomed))}
        with self._store.transaction():
            self._store.write(sql, params)
            tx = _current_tx.get()
            for rid in doomed:
                tx.relationships[(tenant_id, rid)] = None
        return len(doomed)


class BigQueryAccountStore(AccountStore):
    """Account store on BigQuery with buffered, script-level transactions."""

    def __init__(self, bq_client: Optional[BigQueryClient] = None, dataset: Optional[str] = None):
        self.bq = bq_client or get_bigquery_client()
        self.dataset = dataset or get_settings().bq_dataset
        self.accounts_table = self.bq.table_id(self.dataset, ACCOUNTS_TABLE)
        self.relationships_table = self.bq.table_id(self.dataset, RELATIONSHIPS_TABLE)
        self.accounts = _BigQueryAccountRepository(self)
        self.relationships = _BigQueryRelationshipRepository(self)

    @contextmanager
    def transaction(self):
        tx = _current_tx.get()
        if tx is not None:
            tx.depth += 1
            try:
                yield self
            finally:
                tx.depth -= 1
            return

        tx = _PendingWrites()
        token = _current_tx.set(tx)
        try:
            yield self
        finally:
            _current_tx.reset(token)

        # Only reached when the block completed; an exception skips the flush
        if tx.statements:
            self._flush(tx)

    def write(
        self,
        sql: str,
        params: Dict[str, Tuple[str, Any]],
        account_key: Optional[Tuple[str, str]] = None,
        account: Optional[Account] = None,
        relationship_key: Optional[Tuple[str, str]] = None,
        relationship: Optional[AccountRelationship] = None,
    ) -> None:
        """Buffer a statement in the open transaction, or run it immediately in its own."""
        with self.transaction():
            tx = _current_tx.get()
            tx.add(sql, params)
            if account_key is not None:
                tx.accounts[account_key] = account.model_copy(deep=True) if account else None
            if relationship_key is not None:
                tx.relationships[relationship_key] = (
                    relationship.model_copy(deep=True) if relationship else None
                )

    def _flush(self, tx: _PendingWrites) -> None:
        body = ";\n".join(tx.statements)
        script = (
            "BEGIN\n"
            "BEGIN TRANSACTION;\n"
            f"{body};\n"
            "COMMIT TRANSACTION;\n"
            "EXCEPTION WHEN ERROR THEN\n"
            "ROLLBACK TRANSACTION;\n"
            "RAISE USING MESSAGE = @@error.message;\n"
            "END;"
        )
        self.bq.query(script, tx.parameters)
        logger.debug(
            f"Committed {len(tx.statements)} statement(s)",
            extra={"dataset": self.dataset}
        )
