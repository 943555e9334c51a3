"""
Google Sheets service - append/update/read ranges for googleSheets nodes.

The Sheets API client is synchronous; calls run in a worker thread.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from chatflow.flow_engine.collaborators import CollaboratorError, SheetsService

logger = logging.getLogger(__name__)

SCOPES = ['https://www.googleapis.com/auth/spreadsheets']


class GoogleSheetsService(SheetsService):
    def __init__(self, service_account_file: Optional[str] = None, service=None):
        """
        Args:
            service_account_file: Path to the service account JSON key
            service: Prebuilt Sheets API resource (skips credential loading)
        """
        self.service_account_file = service_account_file
        self._service = service

    def _get_service(self):
        if self._service is None:
            if not self.service_account_file:
                raise CollaboratorError('Google service account is not configured')
            credentials = service_account.Credentials.from_service_account_file(
                self.service_account_file, scopes=SCOPES
            )
            self._service = build('sheets', 'v4', credentials=credentials, cache_discovery=False)
        return self._service

    def _execute(self, request_factory) -> Dict[str, Any]:
        try:
            return request_factory(self._get_service().spreadsheets().values()).execute()
        except HttpError as e:
            logger.error(f"Google Sheets API error: {str(e)}")
            raise CollaboratorError(f"Google Sheets API error: {str(e)}") from e

    async def append_rows(self, spreadsheet_id: str, range_: str, values: List[List[Any]]) -> Dict[str, Any]:
        return await asyncio.to_thread(self._execute, lambda values_api: values_api.append(
            spreadsheetId=spreadsheet_id,
            range=range_,
            valueInputOption='USER_ENTERED',
            insertDataOption='INSERT_ROWS',
            body={'values': values},
        ))

    async def update_range(self, spreadsheet_id: str, range_: str, values: List[List[Any]]) -> Dict[str, Any]:
        return await asyncio.to_thread(self._execute, lambda values_api: values_api.update(
            spreadsheetId=spreadsheet_id,
            range=range_,
            valueInputOption='USER_ENTERED',
            body={'values': values},
        ))

    async def read_range(self, spreadsheet_id: str, range_: str) -> List[List[Any]]:
        result = await asyncio.to_thread(self._execute, lambda values_api: values_api.get(
            spreadsheetId=spreadsheet_id,
            range=range_,
        ))
        return result.get('values', [])
