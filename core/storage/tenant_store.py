"""Tenant configuration and provisioning job store.

SQLite-backed. Holds, per tenant, the ProvisioningResult that every CRUD
call depends on (remote ids plus the per-tenant database token), and one
record per provisioning job so the HTTP surface can report progress without
talking to Temporal.
"""

import json
import sqlite3
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.config import get_db_path
from core.provisioning.models import ProvisioningResult


class JobStatus(str, Enum):
    """Provisioning job lifecycle."""
    PENDING = "PENDING"
    PROVISIONING = "PROVISIONING"
    LINKING = "LINKING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    ROLLBACK_FAILED = "ROLLBACK_FAILED"
    LINK_FAILED = "LINK_FAILED"


TERMINAL_STATUSES = frozenset({
    JobStatus.COMPLETED,
    JobStatus.FAILED,
    JobStatus.ROLLBACK_FAILED,
    JobStatus.LINK_FAILED,
})


class TenantConfigStore:
    """Tenant configuration store.

    Usage:
        store = TenantConfigStore()
        store.init_db()
        store.save_result(result)
        result = store.get_result("acme")
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path) if db_path else get_db_path()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def init_db(self) -> None:
        """Create the tenants and provisioning_jobs tables if they don't exist."""
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS tenants (
                    tenant_id TEXT PRIMARY KEY,
                    schema_version TEXT NOT NULL,
                    workspace_id INTEGER,
                    database_id INTEGER,
                    database_token TEXT,
                    links_established INTEGER NOT NULL DEFAULT 0,
                    result_json TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS provisioning_jobs (
                    job_id TEXT PRIMARY KEY,
                    tenant_id TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'PENDING',
                    error_json TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_jobs_tenant
                ON provisioning_jobs(tenant_id, created_at)
            """)
            # At most one open job per tenant
            cursor.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_jobs_one_open
                ON provisioning_jobs(tenant_id)
                WHERE status IN ('PENDING', 'PROVISIONING', 'LINKING')
            """)
            conn.commit()
        finally:
            conn.close()

    # =========================================================================
    # Tenant configuration
    # =========================================================================

    def save_result(self, result: ProvisioningResult) -> None:
        """Persist a provisioning result atomically (insert or replace)."""
        now = datetime.now(timezone.utc).isoformat()
        conn = self._connect()
        try:
            with conn:
                conn.execute("""
                    INSERT INTO tenants (
                        tenant_id, schema_version, workspace_id, database_id,
                        database_token, links_established, result_json, created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(tenant_id) DO UPDATE SET
                        schema_version = excluded.schema_version,
                        workspace_id = excluded.workspace_id,
                        database_id = excluded.database_id,
                        database_token = excluded.database_token,
                        links_established = excluded.links_established,
                        result_json = excluded.result_json,
                        updated_at = excluded.updated_at
                """, (
                    result.tenant_id,
                    result.schema_version,
                    result.workspace_id,
                    result.database_id,
                    result.database_token,
                    int(result.links_established),
                    result.model_dump_json(),
                    now,
                    now,
                ))
        finally:
            conn.close()

    def get_result(self, tenant_id: str) -> Optional[ProvisioningResult]:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("SELECT result_json FROM tenants WHERE tenant_id = ?", (tenant_id,))
            row = cursor.fetchone()
            return ProvisioningResult.model_validate_json(row[0]) if row else None
        finally:
            conn.close()

    def list_tenants(self) -> List[Dict[str, Any]]:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT tenant_id, schema_version, database_id, links_established, updated_at
                FROM tenants ORDER BY tenant_id
            """)
            return [
                {
                    "tenant_id": r[0],
                    "schema_version": r[1],
                    "database_id": r[2],
                    "links_established": bool(r[3]),
                    "updated_at": r[4],
                }
                for r in cursor.fetchall()
            ]
        finally:
            conn.close()

    # =========================================================================
    # Provisioning jobs
    # =========================================================================

    def create_job(self, job_id: str, tenant_id: str) -> Dict[str, Any]:
        """Record a new PENDING job.

        Raises:
            sqlite3.IntegrityError: If job_id already exists or the tenant
                already has an open job
        """
        now = datetime.now(timezone.utc).isoformat()
        conn = self._connect()
        try:
            with conn:
                conn.execute("""
                    INSERT INTO provisioning_jobs (job_id, tenant_id, status, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (job_id, tenant_id, JobStatus.PENDING.value, now, now))
        finally:
            conn.close()
        return {"job_id": job_id, "tenant_id": tenant_id, "status": JobStatus.PENDING.value, "created_at": now}

    def update_job(self, job_id: str, status: JobStatus, error: Optional[Dict[str, Any]] = None) -> None:
        now = datetime.now(timezone.utc).isoformat()
        conn = self._connect()
        try:
            with conn:
                conn.execute("""
                    UPDATE provisioning_jobs SET status = ?, error_json = ?, updated_at = ?
                    WHERE job_id = ?
                """, (status.value, json.dumps(error) if error else None, now, job_id))
        finally:
            conn.close()

    def delete_job(self, job_id: str) -> bool:
        """Remove a job record whose workflow never started."""
        conn = self._connect()
        try:
            with conn:
                cursor = conn.execute("DELETE FROM provisioning_jobs WHERE job_id = ?", (job_id,))
            return cursor.rowcount > 0
        finally:
            conn.close()

    def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT job_id, tenant_id, status, error_json, created_at, updated_at
                FROM provisioning_jobs WHERE job_id = ?
            """, (job_id,))
            row = cursor.fetchone()
            return self._job_row(row) if row else None
        finally:
            conn.close()

    def latest_job(self, tenant_id: str) -> Optional[Dict[str, Any]]:
        conn = self._connect()
        try:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT job_id, tenant_id, status, error_json, created_at, updated_at
                FROM provisioning_jobs WHERE tenant_id = ?
                ORDER BY created_at DESC, rowid DESC LIMIT 1
            """, (tenant_id,))
            row = cursor.fetchone()
            return self._job_row(row) if row else None
        finally:
            conn.close()

    @staticmethod
    def _job_row(row) -> Dict[str, Any]:
        return {
            "job_id": row[0],
            "tenant_id": row[1],
            "status": row[2],
            "error": json.loads(row[3]) if row[3] else None,
            "created_at": row[4],
            "updated_at": row[5],
        }
