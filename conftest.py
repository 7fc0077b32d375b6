"""Shared pytest fixtures.

FakeBaserowClient stands in for BaserowApiClient: it keeps workspaces,
databases, tables and fields in memory, assigns ids the way the backend
does, logs every call, and can be told to fail or block on specific calls.
"""

import asyncio
import itertools
from typing import Any, Callable, Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest

from connectors.baserow import BaserowApiError, Credential


class FakeBaserowClient:
    """In-memory Baserow admin API."""

    def __init__(self):
        self._ids = itertools.count(100)
        self.calls: List[Tuple[str, Tuple[Any, ...]]] = []
        self.workspaces: Dict[int, str] = {}
        self.databases: Dict[int, str] = {}
        self.tables: Dict[int, Dict[str, Any]] = {}
        self.fields: Dict[int, Dict[str, Any]] = {}
        self.created_tables: List[int] = []
        self.deleted_tables: List[int] = []
        self.tokens: List[Dict[str, Any]] = []
        self._failures: List[Tuple[str, Callable[..., bool]]] = []
        self._gates: Dict[str, asyncio.Event] = {}

    # -- test controls -------------------------------------------------------

    def fail_when(self, method: str, predicate: Callable[..., bool] = lambda *a: True) -> None:
        self._failures.append((method, predicate))

    def clear_failures(self) -> None:
        self._failures.clear()

    def block(self, method: str, gate: asyncio.Event) -> None:
        self._gates[method] = gate

    def count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    def table_by_name(self, name: str) -> Dict[str, Any]:
        return next(t for t in self.tables.values() if t["name"] == name)

    def field_names(self, table_id: int) -> List[str]:
        return [self.fields[f]["name"] for f in self.tables[table_id]["field_ids"]]

    async def _enter(self, method: str, *args) -> None:
        self.calls.append((method, args))
        gate = self._gates.get(method)
        if gate is not None:
            await gate.wait()
        await asyncio.sleep(0)
        for name, predicate in self._failures:
            if name == method and predicate(*args):
                raise BaserowApiError(f"Injected failure in {method}", 500)

    def _new_field(self, table_id: int, payload: Dict[str, Any], primary: bool = False) -> Dict[str, Any]:
        field_id = next(self._ids)
        field = {"id": field_id, "table_id": table_id, "primary": primary}
        field.update(payload)
        if "select_options" in payload:
            field["select_options"] = [
                dict(option, id=next(self._ids)) for option in payload["select_options"]
            ]
        self.fields[field_id] = field
        self.tables[table_id]["field_ids"].append(field_id)
        return dict(field)

    # -- API surface -----------------------------------------------------------

    async def create_workspace(self, name: str) -> Dict[str, Any]:
        await self._enter("create_workspace", name)
        workspace_id = next(self._ids)
        self.workspaces[workspace_id] = name
        return {"id": workspace_id, "name": name}

    async def delete_workspace(self, workspace_id: int) -> None:
        await self._enter("delete_workspace", workspace_id)
        del self.workspaces[workspace_id]

    async def create_database(self, workspace_id: int, name: str) -> Dict[str, Any]:
        await self._enter("create_database", workspace_id, name)
        database_id = next(self._ids)
        self.databases[database_id] = name
        return {"id": database_id, "name": name, "type": "database"}

    async def delete_database(self, database_id: int) -> None:
        await self._enter("delete_database", database_id)
        del self.databases[database_id]

    async def create_database_token(self, workspace_id: int, name: str) -> Dict[str, Any]:
        await self._enter("create_database_token", workspace_id, name)
        token = {"id": next(self._ids), "name": name, "key": f"db-token-{workspace_id}"}
        self.tokens.append(token)
        return token

    async def create_table(self, database_id: int, name: str) -> Dict[str, Any]:
        await self._enter("create_table", database_id, name)
        table_id = next(self._ids)
        self.tables[table_id] = {"id": table_id, "name": name, "database_id": database_id, "field_ids": []}
        self.created_tables.append(table_id)
        self._new_field(table_id, {"name": "Name", "type": "text"}, primary=True)
        self._new_field(table_id, {"name": "Notes", "type": "long_text"})
        self._new_field(table_id, {"name": "Active", "type": "boolean"})
        return {"id": table_id, "name": name}

    async def delete_table(self, table_id: int) -> None:
        await self._enter("delete_table", table_id)
        for field_id in self.tables.pop(table_id)["field_ids"]:
            self.fields.pop(field_id, None)
        self.deleted_tables.append(table_id)

    async def list_fields(self, table_id: int) -> List[Dict[str, Any]]:
        await self._enter("list_fields", table_id)
        return [dict(self.fields[f]) for f in self.tables[table_id]["field_ids"]]

    async def create_field(self, table_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        await self._enter("create_field", table_id, payload)
        return self._new_field(table_id, payload)

    async def update_field(self, field_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        await self._enter("update_field", field_id, payload)
        field = self.fields[field_id]
        field.update({k: v for k, v in payload.items() if k != "select_options"})
        if "select_options" in payload:
            field["select_options"] = [
                dict(option, id=next(self._ids)) for option in payload["select_options"]
            ]
        if payload.get("has_related_field") and field.get("type") == "link_row":
            if not field.get("link_row_related_field_id"):
                source = self.tables[field["table_id"]]
                reverse = self._new_field(
                    field["link_row_table_id"],
                    {
                        "name": source["name"],
                        "type": "link_row",
                        "link_row_table_id": source["id"],
                        "link_row_related_field_id": field_id,
                    },
                )
                field["link_row_related_field_id"] = reverse["id"]
        return dict(field)

    async def delete_field(self, field_id: int) -> None:
        await self._enter("delete_field", field_id)
        field = self.fields.pop(field_id)
        self.tables[field["table_id"]]["field_ids"].remove(field_id)


@pytest.fixture
def fake_client():
    return FakeBaserowClient()


@pytest.fixture
def token_manager():
    """Token manager double that always hands out a fresh credential."""
    manager = MagicMock()
    manager.get_valid_token = AsyncMock(
        return_value=Credential(access_token="A1", refresh_token="R1", expires_at=10 ** 13)
    )
    return manager
