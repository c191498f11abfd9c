from __future__ import annotations

from typing import Any


async def soft_delete(conn: Any, table: str, id_col: str, row_id: Any) -> str:
    """Archive a row by setting deleted_at = NOW() if it is still active.

    `table` and `id_col` must be trusted names (module constants); only the
    row id is parameterised.
    """
    q = f"UPDATE {table} SET deleted_at = NOW(), updated_at = NOW() WHERE {id_col} = $1 AND deleted_at IS NULL"
    return await conn.execute(q, row_id)
