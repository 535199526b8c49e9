import uuid

import asyncpg
from fastapi import APIRouter, Depends, HTTPException

from ..activity import log_activity
from ..services.projects import load_project
from .auth import ensure_client_access, get_conn, require_staff, require_user
from .schemas import UploadRequest
from .storage import delete_object, head_object, presign_get, presign_put, project_file_key

router = APIRouter(prefix="/api/projects/{project_id}/files", tags=["files"])

FILE_COLUMNS = """
    id::text AS id, project_id::text AS project_id, client_id::text AS client_id,
    file_name, mime_type, size_bytes, room, description, is_visionboard,
    scan_status, created_at
"""


@router.get("")
async def list_files(
    project_id: str,
    visionboard: bool | None = None,
    user: dict = Depends(require_user),
    conn: asyncpg.Connection = Depends(get_conn),
):
    project = await load_project(conn, project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    ensure_client_access(user, project["client_id"])

    rows = await conn.fetch(
        f"""
        SELECT {FILE_COLUMNS}
        FROM studio.project_files
        WHERE project_id = $1::uuid
          AND scan_status = 'clean'
          AND ($2::boolean IS NULL OR is_visionboard = $2)
        ORDER BY created_at DESC
        """,
        project_id,
        visionboard,
    )
    return {"files": [dict(r) for r in rows]}


@router.post("/upload-url")
async def create_upload_url(
    project_id: str,
    body: UploadRequest,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    project = await load_project(conn, project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")

    file_id = str(uuid.uuid4())
    object_key = project_file_key(project["client_id"], project_id, file_id, body.filename)
    upload_url = presign_put(object_key, body.content_type)

    await conn.execute(
        """
        INSERT INTO studio.project_files (
            id, project_id, client_id, file_name, storage_key, mime_type,
            room, description, is_visionboard, scan_status, uploaded_by
        ) VALUES ($1::uuid, $2::uuid, $3::uuid, $4, $5, $6, $7, $8, $9, 'pending', $10::uuid)
        """,
        file_id, project_id, project["client_id"], body.filename, object_key,
        body.content_type, body.room, body.description, body.is_visionboard,
        staff["user_id"],
    )
    return {
        "file_id": file_id,
        "upload_url": upload_url,
        "storage_key": object_key,
        "expires_in_seconds": 600,
    }


@router.post("/{file_id}/confirm")
async def confirm_upload(
    project_id: str,
    file_id: str,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    async with conn.transaction():
        file_row = await conn.fetchrow(
            """
            SELECT id, storage_key, file_name, is_visionboard
            FROM studio.project_files
            WHERE id = $1::uuid AND project_id = $2::uuid
            """,
            file_id, project_id,
        )
        if not file_row:
            raise HTTPException(status_code=404, detail="File not found for this project")

        obj_meta = head_object(file_row["storage_key"])
        if not obj_meta:
            raise HTTPException(status_code=400, detail="Object not found in storage")

        await conn.execute(
            """
            UPDATE studio.project_files
            SET size_bytes = $1, scan_status = 'clean'
            WHERE id = $2::uuid
            """,
            obj_meta["size_bytes"], file_id,
        )
        await log_activity(
            conn,
            event_type="file_uploaded",
            actor_id=staff["user_id"],
            project_id=project_id,
            metadata={
                "file_id": file_id,
                "file_name": file_row["file_name"],
                "is_visionboard": file_row["is_visionboard"],
            },
        )

    return {"file_id": file_id, "size_bytes": obj_meta["size_bytes"], "scan_status": "clean"}


@router.get("/{file_id}/download")
async def download_file(
    project_id: str,
    file_id: str,
    user: dict = Depends(require_user),
    conn: asyncpg.Connection = Depends(get_conn),
):
    row = await conn.fetchrow(
        """
        SELECT storage_key, file_name, client_id::text AS client_id
        FROM studio.project_files
        WHERE id = $1::uuid AND project_id = $2::uuid AND scan_status = 'clean'
        """,
        file_id, project_id,
    )
    if not row:
        raise HTTPException(status_code=404, detail="File not found")
    ensure_client_access(user, row["client_id"])
    return {"file_id": file_id, "file_name": row["file_name"], "url": presign_get(row["storage_key"])}


@router.delete("/{file_id}")
async def delete_file(
    project_id: str,
    file_id: str,
    staff: dict = Depends(require_staff),
    conn: asyncpg.Connection = Depends(get_conn),
):
    async with conn.transaction():
        key = await conn.fetchval(
            """
            DELETE FROM studio.project_files
            WHERE id = $1::uuid AND project_id = $2::uuid
            RETURNING storage_key
            """,
            file_id, project_id,
        )
        if key is None:
            raise HTTPException(status_code=404, detail="File not found")
        await log_activity(
            conn,
            event_type="file_deleted",
            actor_id=staff["user_id"],
            project_id=project_id,
            metadata={"file_id": file_id},
        )
    delete_object(key)
    return {"ok": True, "file_id": file_id}
