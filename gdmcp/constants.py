from __future__ import annotations

import logging

LOGGER = logging.getLogger("gdmcp.google_api")
APP_VERSION = "0.1.0"
AUTH_MODE = "oauth2-remote"

DRIVE_API_BASE = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_BASE = "https://www.googleapis.com/upload/drive/v3"
SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
DOCUMENT_MIME_TYPE = "application/vnd.google-apps.document"
SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"
WORKSPACE_MIME_PREFIX = "application/vnd.google-apps"
