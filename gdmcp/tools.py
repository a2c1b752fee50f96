from __future__ import annotations

import base64
from typing import Any, Callable

from fastmcp.exceptions import ToolError
from mcp.types import ToolAnnotations

from auth.errors import GoogleAuthError

from .constants import (
    DOCUMENT_MIME_TYPE,
    FOLDER_MIME_TYPE,
    LOGGER,
    SPREADSHEET_MIME_TYPE,
    WORKSPACE_MIME_PREFIX,
)
from .drive_client import DEFAULT_FILE_FIELDS, DriveClient
from .http import RemoteRequestError
from .mcp_app import UnauthorizedRequestError

FULL_FILE_FIELDS = (
    f"{DEFAULT_FILE_FIELDS},description,owners,shared,starred"
)
SPREADSHEET_SUMMARY_FIELDS = (
    "spreadsheetId,properties.title,"
    "sheets(properties(sheetId,title,index,gridProperties(rowCount,columnCount))),"
    "namedRanges"
)

EXPORT_MIME_MAP = {
    DOCUMENT_MIME_TYPE: "text/markdown",
    SPREADSHEET_MIME_TYPE: "text/csv",
    "application/vnd.google-apps.presentation": "text/plain",
    "application/vnd.google-apps.drawing": "image/png",
}

EXPORT_FORMATS = {
    DOCUMENT_MIME_TYPE: {
        "pdf": "application/pdf",
        "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "txt": "text/plain",
        "html": "text/html",
        "markdown": "text/markdown",
        "md": "text/markdown",
        "epub": "application/epub+zip",
        "rtf": "application/rtf",
        "odt": "application/vnd.oasis.opendocument.text",
    },
    SPREADSHEET_MIME_TYPE: {
        "pdf": "application/pdf",
        "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "csv": "text/csv",
        "tsv": "text/tab-separated-values",
        "ods": "application/vnd.oasis.opendocument.spreadsheet",
        "html": "text/html",
    },
    "application/vnd.google-apps.presentation": {
        "pdf": "application/pdf",
        "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "txt": "text/plain",
        "odp": "application/vnd.oasis.opendocument.presentation",
    },
    "application/vnd.google-apps.drawing": {
        "pdf": "application/pdf",
        "png": "image/png",
        "jpg": "image/jpeg",
        "svg": "image/svg+xml",
    },
}

SEARCH_FILE_TYPES = {
    "document": DOCUMENT_MIME_TYPE,
    "spreadsheet": SPREADSHEET_MIME_TYPE,
    "presentation": "application/vnd.google-apps.presentation",
    "folder": FOLDER_MIME_TYPE,
    "pdf": "application/pdf",
    "image": "image/",
    "video": "video/",
    "audio": "audio/",
}

READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, openWorldHint=True)
WRITE = ToolAnnotations(readOnlyHint=False, destructiveHint=False, openWorldHint=True)
DESTRUCTIVE = ToolAnnotations(readOnlyHint=False, destructiveHint=True, openWorldHint=True)


def escape_query_literal(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def build_search_query(
    query: str,
    *,
    file_type: str | None = None,
    modified_after: str | None = None,
    shared_with_me: bool = False,
) -> str:
    clauses = [f"fullText contains '{escape_query_literal(query)}'"]
    if file_type:
        mime = SEARCH_FILE_TYPES.get(file_type)
        if mime is None:
            raise ToolError(
                f"Unknown file_type {file_type!r}. Use one of: {', '.join(SEARCH_FILE_TYPES)}"
            )
        if mime.endswith("/"):
            clauses.append(f"mimeType contains '{mime}'")
        else:
            clauses.append(f"mimeType = '{mime}'")
    if modified_after:
        clauses.append(f"modifiedTime > '{escape_query_literal(modified_after)}'")
    if shared_with_me:
        clauses.append("sharedWithMe = true")
    clauses.append("trashed = false")
    return " and ".join(clauses)


def upload_mime_type(mime_type: str | None) -> str:
    """Media type for text content uploaded alongside ``mime_type`` metadata.

    Google converts HTML into Docs and CSV into Sheets on upload.
    """
    if mime_type == DOCUMENT_MIME_TYPE:
        return "text/html"
    if mime_type == SPREADSHEET_MIME_TYPE:
        return "text/csv"
    return mime_type or "text/plain"


def _format_file_line(item: dict) -> str:
    size = f" ({item['size']} bytes)" if item.get("size") else ""
    trashed = " [TRASHED]" if item.get("trashed") else ""
    return (
        f"- {item.get('name')}{size}{trashed}\n"
        f"  ID: {item.get('id')}\n"
        f"  Type: {item.get('mimeType')}\n"
        f"  Modified: {item.get('modifiedTime')}"
    )


def _format_rows(rows: list[list[Any]]) -> str:
    return "\n".join(
        f"{index}\t| " + "\t| ".join(str(cell) for cell in row)
        for index, row in enumerate(rows, start=1)
    )


# -- Drive ----------------------------------------------------------------------


async def search_files(
    drive: DriveClient,
    query: str,
    *,
    page_size: int = 20,
    file_type: str | None = None,
    modified_after: str | None = None,
    shared_with_me: bool = False,
) -> str:
    result = await drive.list_files(
        query=build_search_query(
            query,
            file_type=file_type,
            modified_after=modified_after,
            shared_with_me=shared_with_me,
        ),
        page_size=page_size,
        order_by="modifiedTime desc",
        fields=f"files({DEFAULT_FILE_FIELDS})",
    )
    files = result.get("files") or []
    if not files:
        return f'No files found matching "{query}".'
    lines = "\n\n".join(_format_file_line(item) for item in files)
    return f"Found {len(files)} file(s):\n\n{lines}"


async def list_files(
    drive: DriveClient,
    *,
    folder_id: str | None = None,
    query: str | None = None,
    page_size: int = 20,
    order_by: str = "modifiedTime desc",
    page_token: str | None = None,
    include_trash: bool = False,
) -> str:
    clauses = []
    if folder_id:
        clauses.append(f"'{escape_query_literal(folder_id)}' in parents")
    if query:
        clauses.append(query)
    if not include_trash:
        clauses.append("trashed = false")

    result = await drive.list_files(
        query=" and ".join(clauses) if clauses else None,
        page_size=page_size,
        order_by=order_by,
        page_token=page_token,
    )
    files = result.get("files") or []
    if not files:
        return "No files found."

    text = f"Files ({len(files)}):\n\n" + "\n\n".join(_format_file_line(item) for item in files)
    next_page_token = result.get("nextPageToken")
    if next_page_token:
        text += f'\n\nMore results available. Use page_token: "{next_page_token}"'
    return text


async def get_file_metadata(drive: DriveClient, file_id: str) -> str:
    item = await drive.get_file(file_id, fields=FULL_FILE_FIELDS)
    lines = [
        f"Name: {item.get('name')}",
        f"ID: {item.get('id')}",
        f"Type: {item.get('mimeType')}",
        f"Size: {item.get('size', 'N/A')} bytes",
        f"Created: {item.get('createdTime')}",
        f"Modified: {item.get('modifiedTime')}",
        f"Parents: {', '.join(item.get('parents') or ['root'])}",
        f"Description: {item.get('description', '')}",
        f"Trashed: {item.get('trashed')}",
        f"Shared: {item.get('shared')}",
        f"Starred: {item.get('starred')}",
        f"Link: {item.get('webViewLink', 'N/A')}",
    ]
    owners = item.get("owners")
    if owners:
        names = [owner.get("displayName") or owner.get("emailAddress") or "" for owner in owners]
        lines.append(f"Owners: {', '.join(names)}")
    return "\n".join(lines)


async def read_file(drive: DriveClient, file_id: str) -> dict:
    item = await drive.get_file(file_id, fields="id,name,mimeType")
    mime_type = item.get("mimeType") or "application/octet-stream"

    if mime_type.startswith(WORKSPACE_MIME_PREFIX):
        export_mime = EXPORT_MIME_MAP.get(mime_type, "text/plain")
        data = await drive.export_file(file_id, export_mime)
        if export_mime.startswith("text/"):
            return {"mimeType": export_mime, "text": data.decode("utf-8", errors="replace")}
        return {"mimeType": export_mime, "blob": base64.b64encode(data).decode("ascii")}

    data = await drive.download_file(file_id)
    if mime_type.startswith("text/") or mime_type == "application/json":
        return {"mimeType": mime_type, "text": data.decode("utf-8", errors="replace")}
    return {"mimeType": mime_type, "blob": base64.b64encode(data).decode("ascii")}


async def create_file(
    drive: DriveClient,
    name: str,
    *,
    mime_type: str | None = None,
    content: str | None = None,
    parent_id: str | None = None,
    description: str | None = None,
) -> str:
    metadata: dict[str, Any] = {"name": name}
    if mime_type:
        metadata["mimeType"] = mime_type
    if parent_id:
        metadata["parents"] = [parent_id]
    if description:
        metadata["description"] = description

    if content:
        created = await drive.create_file(
            metadata, content=content, content_type=upload_mime_type(mime_type)
        )
    else:
        created = await drive.create_file(metadata)

    kind = "folder" if created.get("mimeType") == FOLDER_MIME_TYPE else "file"
    return (
        f"Created {kind}: \"{created.get('name')}\"\n"
        f"ID: {created.get('id')}\n"
        f"Type: {created.get('mimeType')}\n"
        f"Link: {created.get('webViewLink', 'N/A')}"
    )


async def update_file(
    drive: DriveClient,
    file_id: str,
    *,
    name: str | None = None,
    description: str | None = None,
    content: str | None = None,
    mime_type: str | None = None,
) -> str:
    metadata: dict[str, Any] = {}
    if name:
        metadata["name"] = name
    if description is not None:
        metadata["description"] = description

    if content:
        updated = await drive.update_file(
            file_id, metadata, content=content, content_type=mime_type or "text/plain"
        )
    else:
        updated = await drive.update_file(file_id, metadata)
    return (
        f"Updated file: \"{updated.get('name')}\"\n"
        f"ID: {updated.get('id')}\n"
        f"Modified: {updated.get('modifiedTime')}"
    )


async def move_file(drive: DriveClient, file_id: str, new_parent_id: str) -> str:
    current = await drive.get_file(file_id, fields="parents")
    moved = await drive.update_file(
        file_id,
        add_parents=new_parent_id,
        remove_parents=",".join(current.get("parents") or []) or None,
    )
    return f"Moved \"{moved.get('name')}\" to folder {new_parent_id}.\nID: {moved.get('id')}"


async def copy_file(
    drive: DriveClient,
    file_id: str,
    *,
    name: str | None = None,
    parent_id: str | None = None,
) -> str:
    metadata: dict[str, Any] = {}
    if name:
        metadata["name"] = name
    if parent_id:
        metadata["parents"] = [parent_id]
    copied = await drive.copy_file(file_id, metadata)
    return (
        f"Copied to: \"{copied.get('name')}\"\n"
        f"New ID: {copied.get('id')}\n"
        f"Type: {copied.get('mimeType')}"
    )


async def set_trashed(drive: DriveClient, file_id: str, trashed: bool) -> str:
    updated = await drive.update_file(file_id, {"trashed": trashed})
    if trashed:
        return f"Moved \"{updated.get('name')}\" to trash.\nID: {updated.get('id')}"
    return f"Restored \"{updated.get('name')}\" from trash.\nID: {updated.get('id')}"


async def delete_file(drive: DriveClient, file_id: str) -> str:
    await drive.delete_file(file_id)
    return f"File {file_id} permanently deleted."


async def export_file(drive: DriveClient, file_id: str, export_format: str) -> str:
    item = await drive.get_file(file_id, fields="mimeType,name")
    mime_type = item.get("mimeType") or ""
    formats = EXPORT_FORMATS.get(mime_type)
    if formats is None:
        raise ToolError(
            f'File type "{mime_type}" is not a Google Workspace file and cannot be exported. '
            "Only Docs, Sheets, Slides, and Drawings support export."
        )
    export_mime = formats.get(export_format.lower())
    if export_mime is None:
        raise ToolError(
            f'Format "{export_format}" is not supported for {mime_type}. '
            f"Supported formats: {', '.join(formats)}"
        )

    data = await drive.export_file(file_id, export_mime)
    if export_mime.startswith("text/"):
        body = data.decode("utf-8", errors="replace")
    else:
        body = base64.b64encode(data).decode("ascii")
    return f"Exported \"{item.get('name')}\" as {export_format}:\n\n{body}"


# -- Sheets ---------------------------------------------------------------------


async def get_spreadsheet(drive: DriveClient, spreadsheet_id: str) -> str:
    data = await drive.get_spreadsheet(spreadsheet_id, fields=SPREADSHEET_SUMMARY_FIELDS)
    lines = [
        f"Title: {(data.get('properties') or {}).get('title', 'Untitled')}",
        f"Spreadsheet ID: {data.get('spreadsheetId')}",
        "",
        "=== Sheets ===",
    ]
    for sheet in data.get("sheets") or []:
        properties = sheet.get("properties") or {}
        grid = properties.get("gridProperties") or {}
        lines.append(
            f"- \"{properties.get('title')}\" "
            f"(ID: {properties.get('sheetId')}, index: {properties.get('index')})"
        )
        lines.append(
            f"  Rows: {grid.get('rowCount', '?')}, Columns: {grid.get('columnCount', '?')}"
        )

    named_ranges = data.get("namedRanges") or []
    if named_ranges:
        lines.extend(["", "=== Named Ranges ==="])
        for named in named_ranges:
            lines.append(f"- {named.get('name')} (ID: {named.get('namedRangeId')})")
    return "\n".join(lines)


async def get_values(drive: DriveClient, spreadsheet_id: str, range_: str) -> str:
    data = await drive.get_values(spreadsheet_id, range_)
    rows = data.get("values") or []
    label = data.get("range") or range_
    if not rows:
        return f"Range {label}: (empty)"
    return f"Range: {label} ({len(rows)} rows)\n\n{_format_rows(rows)}"


async def batch_get_values(drive: DriveClient, spreadsheet_id: str, ranges: list[str]) -> str:
    if not ranges:
        raise ToolError("At least one range is required.")
    data = await drive.batch_get_values(spreadsheet_id, ranges)
    sections = []
    for value_range in data.get("valueRanges") or []:
        rows = value_range.get("values") or []
        if not rows:
            sections.append(f"=== {value_range.get('range')} === (empty)")
        else:
            sections.append(
                f"=== {value_range.get('range')} === ({len(rows)} rows)\n{_format_rows(rows)}"
            )
    return "\n\n".join(sections)


async def update_values(
    drive: DriveClient,
    spreadsheet_id: str,
    range_: str,
    values: list[list[Any]],
    *,
    value_input_option: str = "USER_ENTERED",
) -> str:
    data = await drive.update_values(
        spreadsheet_id, range_, values, value_input_option=value_input_option
    )
    return (
        f"Updated {data.get('updatedRange', range_)}\n"
        f"Cells updated: {data.get('updatedCells', 'N/A')}\n"
        f"Rows: {data.get('updatedRows', 'N/A')}, Columns: {data.get('updatedColumns', 'N/A')}"
    )


async def append_values(
    drive: DriveClient,
    spreadsheet_id: str,
    range_: str,
    values: list[list[Any]],
    *,
    value_input_option: str = "USER_ENTERED",
) -> str:
    data = await drive.append_values(
        spreadsheet_id, range_, values, value_input_option=value_input_option
    )
    updates = data.get("updates") or {}
    return (
        f"Appended to {updates.get('updatedRange', range_)}\n"
        f"Rows added: {updates.get('updatedRows', 'N/A')}\n"
        f"Cells updated: {updates.get('updatedCells', 'N/A')}"
    )


async def clear_values(drive: DriveClient, spreadsheet_id: str, range_: str) -> str:
    data = await drive.clear_values(spreadsheet_id, range_)
    return f"Cleared range: {data.get('clearedRange', range_)}"


async def add_sheet(drive: DriveClient, spreadsheet_id: str, title: str) -> str:
    data = await drive.batch_update_spreadsheet(
        spreadsheet_id, [{"addSheet": {"properties": {"title": title}}}]
    )
    replies = data.get("replies") or [{}]
    properties = (replies[0].get("addSheet") or {}).get("properties") or {}
    return (
        f"Added sheet: \"{properties.get('title', title)}\"\n"
        f"Sheet ID: {properties.get('sheetId', 'N/A')}\n"
        f"Index: {properties.get('index', 'N/A')}"
    )


async def delete_sheet(drive: DriveClient, spreadsheet_id: str, sheet_id: int) -> str:
    await drive.batch_update_spreadsheet(
        spreadsheet_id, [{"deleteSheet": {"sheetId": sheet_id}}]
    )
    return f"Deleted sheet with ID {sheet_id} from spreadsheet {spreadsheet_id}."


async def create_spreadsheet(
    drive: DriveClient, title: str, *, sheet_names: list[str] | None = None
) -> str:
    data = await drive.create_spreadsheet(title, sheet_titles=sheet_names)
    sheets = "\n".join(
        f"- \"{(sheet.get('properties') or {}).get('title')}\" "
        f"(ID: {(sheet.get('properties') or {}).get('sheetId')})"
        for sheet in data.get("sheets") or []
    )
    return (
        f"Created spreadsheet: \"{(data.get('properties') or {}).get('title')}\"\n"
        f"ID: {data.get('spreadsheetId')}\n"
        f"URL: {data.get('spreadsheetUrl')}\n\n"
        f"Sheets:\n{sheets}"
    )


# -- registration ---------------------------------------------------------------


def register_tools(mcp, drive_factory: Callable[[], DriveClient]) -> None:
    """Register the Drive and Sheets tools on ``mcp``.

    ``drive_factory`` is called once per tool invocation and returns a client
    bound to the calling MCP session.
    """

    async def run(action: str, call):
        try:
            return await call(drive_factory())
        except RemoteRequestError as error:
            LOGGER.warning("%s: status=%s %s", action, error.status_code, error.message)
            raise ToolError(f"{action}: {error.guidance}") from error
        except (GoogleAuthError, UnauthorizedRequestError) as error:
            raise ToolError(f"{action}: {error}") from error

    @mcp.tool(
        name="gdrive_search",
        description=(
            "Search for files in Google Drive by name or content. Optional filters: "
            "file_type (document, spreadsheet, presentation, folder, pdf, image, video, "
            "audio), modified_after (ISO 8601 date) and shared_with_me."
        ),
        annotations=READ_ONLY,
    )
    async def gdrive_search(
        query: str,
        page_size: int = 20,
        file_type: str | None = None,
        modified_after: str | None = None,
        shared_with_me: bool = False,
    ) -> str:
        return await run(
            "Search failed",
            lambda drive: search_files(
                drive,
                query,
                page_size=page_size,
                file_type=file_type,
                modified_after=modified_after,
                shared_with_me=shared_with_me,
            ),
        )

    @mcp.tool(
        name="gdrive_list_files",
        description=(
            "List files in Google Drive, optionally inside one folder or filtered by a raw "
            "Drive query. Supports ordering and pagination."
        ),
        annotations=READ_ONLY,
    )
    async def gdrive_list_files(
        folder_id: str | None = None,
        query: str | None = None,
        page_size: int = 20,
        order_by: str = "modifiedTime desc",
        page_token: str | None = None,
        include_trash: bool = False,
    ) -> str:
        return await run(
            "Failed to list files",
            lambda drive: list_files(
                drive,
                folder_id=folder_id,
                query=query,
                page_size=page_size,
                order_by=order_by,
                page_token=page_token,
                include_trash=include_trash,
            ),
        )

    @mcp.tool(
        name="gdrive_get_file_metadata",
        description="Get detailed metadata for a file or folder.",
        annotations=READ_ONLY,
    )
    async def gdrive_get_file_metadata(file_id: str) -> str:
        return await run("Failed to get metadata", lambda drive: get_file_metadata(drive, file_id))

    @mcp.tool(
        name="gdrive_read_file",
        description=(
            "Read a file's content. Google Workspace files are exported (Docs as markdown, "
            "Sheets as CSV); text files are returned as text, anything else as base64."
        ),
        annotations=READ_ONLY,
    )
    async def gdrive_read_file(file_id: str) -> dict:
        return await run("Failed to read file", lambda drive: read_file(drive, file_id))

    @mcp.tool(
        name="gdrive_create_file",
        description=(
            "Create a file or folder. For folders set mime_type to "
            "'application/vnd.google-apps.folder'. For Google Docs provide HTML content, for "
            "Google Sheets provide CSV. Text content only."
        ),
        annotations=WRITE,
    )
    async def gdrive_create_file(
        name: str,
        mime_type: str | None = None,
        content: str | None = None,
        parent_id: str | None = None,
        description: str | None = None,
    ) -> str:
        return await run(
            "Failed to create file",
            lambda drive: create_file(
                drive,
                name,
                mime_type=mime_type,
                content=content,
                parent_id=parent_id,
                description=description,
            ),
        )

    @mcp.tool(
        name="gdrive_update_file",
        description="Rename a file, change its description, or replace its text content.",
        annotations=WRITE,
    )
    async def gdrive_update_file(
        file_id: str,
        name: str | None = None,
        description: str | None = None,
        content: str | None = None,
        mime_type: str | None = None,
    ) -> str:
        return await run(
            "Failed to update file",
            lambda drive: update_file(
                drive,
                file_id,
                name=name,
                description=description,
                content=content,
                mime_type=mime_type,
            ),
        )

    @mcp.tool(
        name="gdrive_copy_file",
        description="Copy a file, optionally with a new name or into another folder.",
        annotations=WRITE,
    )
    async def gdrive_copy_file(
        file_id: str, name: str | None = None, parent_id: str | None = None
    ) -> str:
        return await run(
            "Failed to copy file",
            lambda drive: copy_file(drive, file_id, name=name, parent_id=parent_id),
        )

    @mcp.tool(
        name="gdrive_move_file",
        description="Move a file to a different folder.",
        annotations=WRITE,
    )
    async def gdrive_move_file(file_id: str, new_parent_id: str) -> str:
        return await run(
            "Failed to move file", lambda drive: move_file(drive, file_id, new_parent_id)
        )

    @mcp.tool(
        name="gdrive_trash_file",
        description="Move a file to the trash. It can be restored with gdrive_untrash_file.",
        annotations=DESTRUCTIVE,
    )
    async def gdrive_trash_file(file_id: str) -> str:
        return await run("Failed to trash file", lambda drive: set_trashed(drive, file_id, True))

    @mcp.tool(
        name="gdrive_untrash_file",
        description="Restore a file from the trash.",
        annotations=WRITE,
    )
    async def gdrive_untrash_file(file_id: str) -> str:
        return await run(
            "Failed to untrash file", lambda drive: set_trashed(drive, file_id, False)
        )

    @mcp.tool(
        name="gdrive_delete_file",
        description=(
            "Permanently delete a file. This cannot be undone; prefer gdrive_trash_file "
            "for recoverable deletion."
        ),
        annotations=DESTRUCTIVE,
    )
    async def gdrive_delete_file(file_id: str) -> str:
        return await run("Failed to delete file", lambda drive: delete_file(drive, file_id))

    @mcp.tool(
        name="gdrive_export_file",
        description=(
            "Export a Google Workspace file. Docs: pdf, docx, txt, html, markdown, epub, rtf, "
            "odt. Sheets: pdf, xlsx, csv, tsv, ods, html. Slides: pdf, pptx, txt, odp. "
            "Drawings: pdf, png, jpg, svg."
        ),
        annotations=READ_ONLY,
    )
    async def gdrive_export_file(file_id: str, format: str) -> str:
        return await run(
            "Failed to export file", lambda drive: export_file(drive, file_id, format)
        )

    @mcp.tool(
        name="gsheets_get_spreadsheet",
        description="Get spreadsheet structure: title, sheets with sizes, and named ranges.",
        annotations=READ_ONLY,
    )
    async def gsheets_get_spreadsheet(spreadsheet_id: str) -> str:
        return await run(
            "Failed to get spreadsheet", lambda drive: get_spreadsheet(drive, spreadsheet_id)
        )

    @mcp.tool(
        name="gsheets_get_values",
        description="Read cell values from an A1 range, e.g. 'Sheet1!A1:D10'.",
        annotations=READ_ONLY,
    )
    async def gsheets_get_values(spreadsheet_id: str, range: str) -> str:
        return await run(
            "Failed to get values", lambda drive: get_values(drive, spreadsheet_id, range)
        )

    @mcp.tool(
        name="gsheets_batch_get_values",
        description="Read several A1 ranges in one request.",
        annotations=READ_ONLY,
    )
    async def gsheets_batch_get_values(spreadsheet_id: str, ranges: list[str]) -> str:
        return await run(
            "Failed to batch get values",
            lambda drive: batch_get_values(drive, spreadsheet_id, ranges),
        )

    @mcp.tool(
        name="gsheets_update_values",
        description=(
            "Write a 2D array of values to an A1 range, overwriting existing data. "
            "value_input_option is RAW or USER_ENTERED."
        ),
        annotations=DESTRUCTIVE,
    )
    async def gsheets_update_values(
        spreadsheet_id: str,
        range: str,
        values: list[list[str | int | float | bool | None]],
        value_input_option: str = "USER_ENTERED",
    ) -> str:
        return await run(
            "Failed to update values",
            lambda drive: update_values(
                drive, spreadsheet_id, range, values, value_input_option=value_input_option
            ),
        )

    @mcp.tool(
        name="gsheets_append_values",
        description="Append rows after the last row with content in a sheet or table.",
        annotations=WRITE,
    )
    async def gsheets_append_values(
        spreadsheet_id: str,
        range: str,
        values: list[list[str | int | float | bool | None]],
        value_input_option: str = "USER_ENTERED",
    ) -> str:
        return await run(
            "Failed to append values",
            lambda drive: append_values(
                drive, spreadsheet_id, range, values, value_input_option=value_input_option
            ),
        )

    @mcp.tool(
        name="gsheets_clear_values",
        description="Clear the values in an A1 range. Formatting is kept.",
        annotations=DESTRUCTIVE,
    )
    async def gsheets_clear_values(spreadsheet_id: str, range: str) -> str:
        return await run(
            "Failed to clear values", lambda drive: clear_values(drive, spreadsheet_id, range)
        )

    @mcp.tool(
        name="gsheets_add_sheet",
        description="Add a new sheet (tab) to a spreadsheet.",
        annotations=WRITE,
    )
    async def gsheets_add_sheet(spreadsheet_id: str, title: str) -> str:
        return await run(
            "Failed to add sheet", lambda drive: add_sheet(drive, spreadsheet_id, title)
        )

    @mcp.tool(
        name="gsheets_delete_sheet",
        description="Delete a sheet (tab) by its numeric sheet ID.",
        annotations=DESTRUCTIVE,
    )
    async def gsheets_delete_sheet(spreadsheet_id: str, sheet_id: int) -> str:
        return await run(
            "Failed to delete sheet", lambda drive: delete_sheet(drive, spreadsheet_id, sheet_id)
        )

    @mcp.tool(
        name="gsheets_create_spreadsheet",
        description="Create a new spreadsheet, optionally with named sheets.",
        annotations=WRITE,
    )
    async def gsheets_create_spreadsheet(
        title: str, sheet_names: list[str] | None = None
    ) -> str:
        return await run(
            "Failed to create spreadsheet",
            lambda drive: create_spreadsheet(drive, title, sheet_names=sheet_names),
        )
