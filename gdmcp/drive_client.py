from __future__ import annotations

from typing import Any
from urllib.parse import quote

from .constants import DRIVE_API_BASE, DRIVE_UPLOAD_BASE, SHEETS_API_BASE
from .http import AuthenticatedExecutor, MultipartBody, RequestSpec

DEFAULT_FILE_FIELDS = "id,name,mimeType,size,modifiedTime,createdTime,parents,webViewLink,trashed"
DEFAULT_LIST_FIELDS = f"nextPageToken,files({DEFAULT_FILE_FIELDS})"


def _segment(value: str) -> str:
    return quote(value, safe="")


class DriveClient:
    """Thin Drive v3 / Sheets v4 wrapper on top of ``AuthenticatedExecutor``."""

    def __init__(self, executor: AuthenticatedExecutor) -> None:
        self.executor = executor

    async def _json(self, spec: RequestSpec) -> Any:
        response = await self.executor.execute(spec)
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    # -- files ------------------------------------------------------------------

    async def list_files(
        self,
        *,
        query: str | None = None,
        page_size: int | None = None,
        page_token: str | None = None,
        order_by: str | None = None,
        fields: str = DEFAULT_LIST_FIELDS,
    ) -> dict:
        return await self._json(
            RequestSpec(
                "GET",
                f"{DRIVE_API_BASE}/files",
                params={
                    "q": query,
                    "pageSize": page_size,
                    "pageToken": page_token,
                    "orderBy": order_by,
                    "fields": fields,
                    "supportsAllDrives": "true",
                    "includeItemsFromAllDrives": "true",
                },
            )
        )

    async def get_file(self, file_id: str, *, fields: str = DEFAULT_FILE_FIELDS) -> dict:
        return await self._json(
            RequestSpec(
                "GET",
                f"{DRIVE_API_BASE}/files/{_segment(file_id)}",
                params={"fields": fields, "supportsAllDrives": "true"},
            )
        )

    async def download_file(self, file_id: str) -> bytes:
        response = await self.executor.execute(
            RequestSpec(
                "GET",
                f"{DRIVE_API_BASE}/files/{_segment(file_id)}",
                params={"alt": "media", "supportsAllDrives": "true"},
            )
        )
        return response.content

    async def export_file(self, file_id: str, mime_type: str) -> bytes:
        response = await self.executor.execute(
            RequestSpec(
                "GET",
                f"{DRIVE_API_BASE}/files/{_segment(file_id)}/export",
                params={"mimeType": mime_type},
            )
        )
        return response.content

    async def create_file(
        self,
        metadata: dict,
        *,
        content: str | bytes | None = None,
        content_type: str = "text/plain",
        fields: str = DEFAULT_FILE_FIELDS,
    ) -> dict:
        if content is None:
            return await self._json(
                RequestSpec(
                    "POST",
                    f"{DRIVE_API_BASE}/files",
                    params={"fields": fields, "supportsAllDrives": "true"},
                    json=metadata,
                )
            )
        return await self._json(
            RequestSpec(
                "POST",
                f"{DRIVE_UPLOAD_BASE}/files",
                params={
                    "uploadType": "multipart",
                    "fields": fields,
                    "supportsAllDrives": "true",
                },
                multipart=MultipartBody(metadata, content, content_type),
            )
        )

    async def update_file(
        self,
        file_id: str,
        metadata: dict | None = None,
        *,
        content: str | bytes | None = None,
        content_type: str = "text/plain",
        add_parents: str | None = None,
        remove_parents: str | None = None,
        fields: str = DEFAULT_FILE_FIELDS,
    ) -> dict:
        params = {
            "fields": fields,
            "addParents": add_parents,
            "removeParents": remove_parents,
            "supportsAllDrives": "true",
        }
        if content is None:
            return await self._json(
                RequestSpec(
                    "PATCH",
                    f"{DRIVE_API_BASE}/files/{_segment(file_id)}",
                    params=params,
                    json=metadata or {},
                )
            )
        params["uploadType"] = "multipart"
        return await self._json(
            RequestSpec(
                "PATCH",
                f"{DRIVE_UPLOAD_BASE}/files/{_segment(file_id)}",
                params=params,
                multipart=MultipartBody(metadata or {}, content, content_type),
            )
        )

    async def delete_file(self, file_id: str) -> None:
        await self.executor.execute(
            RequestSpec(
                "DELETE",
                f"{DRIVE_API_BASE}/files/{_segment(file_id)}",
                params={"supportsAllDrives": "true"},
            )
        )

    async def copy_file(
        self,
        file_id: str,
        metadata: dict | None = None,
        *,
        fields: str = DEFAULT_FILE_FIELDS,
    ) -> dict:
        return await self._json(
            RequestSpec(
                "POST",
                f"{DRIVE_API_BASE}/files/{_segment(file_id)}/copy",
                params={"fields": fields, "supportsAllDrives": "true"},
                json=metadata or {},
            )
        )

    # -- spreadsheets -----------------------------------------------------------

    async def get_spreadsheet(
        self,
        spreadsheet_id: str,
        *,
        fields: str | None = None,
        include_grid_data: bool = False,
    ) -> dict:
        return await self._json(
            RequestSpec(
                "GET",
                f"{SHEETS_API_BASE}/{_segment(spreadsheet_id)}",
                params={
                    "fields": fields,
                    "includeGridData": "true" if include_grid_data else None,
                },
            )
        )

    async def create_spreadsheet(self, title: str, *, sheet_titles: list[str] | None = None) -> dict:
        body: dict[str, Any] = {"properties": {"title": title}}
        if sheet_titles:
            body["sheets"] = [{"properties": {"title": name}} for name in sheet_titles]
        return await self._json(RequestSpec("POST", SHEETS_API_BASE, json=body))

    async def batch_update_spreadsheet(self, spreadsheet_id: str, requests: list[dict]) -> dict:
        return await self._json(
            RequestSpec(
                "POST",
                f"{SHEETS_API_BASE}/{_segment(spreadsheet_id)}:batchUpdate",
                json={"requests": requests},
            )
        )

    # -- values -----------------------------------------------------------------

    async def get_values(
        self,
        spreadsheet_id: str,
        range_: str,
        *,
        value_render_option: str | None = None,
    ) -> dict:
        return await self._json(
            RequestSpec(
                "GET",
                f"{SHEETS_API_BASE}/{_segment(spreadsheet_id)}/values/{_segment(range_)}",
                params={"valueRenderOption": value_render_option},
            )
        )

    async def batch_get_values(self, spreadsheet_id: str, ranges: list[str]) -> dict:
        return await self._json(
            RequestSpec(
                "GET",
                f"{SHEETS_API_BASE}/{_segment(spreadsheet_id)}/values:batchGet",
                params=[("ranges", range_) for range_ in ranges],
            )
        )

    async def update_values(
        self,
        spreadsheet_id: str,
        range_: str,
        values: list[list[Any]],
        *,
        value_input_option: str = "USER_ENTERED",
    ) -> dict:
        return await self._json(
            RequestSpec(
                "PUT",
                f"{SHEETS_API_BASE}/{_segment(spreadsheet_id)}/values/{_segment(range_)}",
                params={"valueInputOption": value_input_option},
                json={"range": range_, "majorDimension": "ROWS", "values": values},
            )
        )

    async def append_values(
        self,
        spreadsheet_id: str,
        range_: str,
        values: list[list[Any]],
        *,
        value_input_option: str = "USER_ENTERED",
        insert_data_option: str = "INSERT_ROWS",
    ) -> dict:
        return await self._json(
            RequestSpec(
                "POST",
                f"{SHEETS_API_BASE}/{_segment(spreadsheet_id)}/values/{_segment(range_)}:append",
                params={
                    "valueInputOption": value_input_option,
                    "insertDataOption": insert_data_option,
                },
                json={"range": range_, "majorDimension": "ROWS", "values": values},
            )
        )

    async def clear_values(self, spreadsheet_id: str, range_: str) -> dict:
        return await self._json(
            RequestSpec(
                "POST",
                f"{SHEETS_API_BASE}/{_segment(spreadsheet_id)}/values/{_segment(range_)}:clear",
                json={},
            )
        )

    async def batch_update_values(
        self,
        spreadsheet_id: str,
        data: list[dict],
        *,
        value_input_option: str = "USER_ENTERED",
    ) -> dict:
        return await self._json(
            RequestSpec(
                "POST",
                f"{SHEETS_API_BASE}/{_segment(spreadsheet_id)}/values:batchUpdate",
                json={"valueInputOption": value_input_option, "data": data},
            )
        )
