"""
Testes do GoogleSheetsService com recurso da API mockado.
"""
import pytest
from unittest.mock import MagicMock

from googleapiclient.errors import HttpError

from chatflow.flow_engine.collaborators import CollaboratorError
from chatflow.services.google_sheets import GoogleSheetsService


@pytest.fixture
def sheets_api():
    return MagicMock()


@pytest.fixture
def values_api(sheets_api):
    return sheets_api.spreadsheets.return_value.values.return_value


class TestGoogleSheetsService:
    """Testes para GoogleSheetsService"""

    @pytest.mark.asyncio
    async def test_append_rows(self, sheets_api, values_api):
        """Testa append com USER_ENTERED / INSERT_ROWS"""
        values_api.append.return_value.execute.return_value = {'updates': {'updatedRows': 1}}
        service = GoogleSheetsService(service=sheets_api)

        result = await service.append_rows('sheet-1', 'Leads!A1', [['Ana', 'a@b.com']])

        assert result == {'updates': {'updatedRows': 1}}
        values_api.append.assert_called_once_with(
            spreadsheetId='sheet-1',
            range='Leads!A1',
            valueInputOption='USER_ENTERED',
            insertDataOption='INSERT_ROWS',
            body={'values': [['Ana', 'a@b.com']]},
        )

    @pytest.mark.asyncio
    async def test_update_range(self, sheets_api, values_api):
        """Testa update de um intervalo"""
        service = GoogleSheetsService(service=sheets_api)

        await service.update_range('sheet-1', 'B2', [['x']])

        values_api.update.assert_called_once_with(
            spreadsheetId='sheet-1',
            range='B2',
            valueInputOption='USER_ENTERED',
            body={'values': [['x']]},
        )

    @pytest.mark.asyncio
    async def test_read_range(self, sheets_api, values_api):
        """Testa leitura de linhas"""
        values_api.get.return_value.execute.return_value = {'values': [['a', 'b']]}
        service = GoogleSheetsService(service=sheets_api)

        assert await service.read_range('sheet-1', 'Prices') == [['a', 'b']]

    @pytest.mark.asyncio
    async def test_read_empty_range(self, sheets_api, values_api):
        """Testa intervalo vazio"""
        values_api.get.return_value.execute.return_value = {}
        service = GoogleSheetsService(service=sheets_api)

        assert await service.read_range('sheet-1', 'Empty') == []

    @pytest.mark.asyncio
    async def test_api_error(self, sheets_api, values_api):
        """Testa que HttpError vira CollaboratorError"""
        values_api.get.return_value.execute.side_effect = HttpError(
            resp=MagicMock(status=403, reason='Forbidden'),
            content=b'{"error": {"message": "The caller does not have permission"}}',
        )
        service = GoogleSheetsService(service=sheets_api)

        with pytest.raises(CollaboratorError, match='Google Sheets API error'):
            await service.read_range('sheet-1', 'A1')

    @pytest.mark.asyncio
    async def test_not_configured(self):
        """Testa serviço sem service account"""
        with pytest.raises(CollaboratorError, match='not configured'):
            await GoogleSheetsService().read_range('sheet-1', 'A1')
