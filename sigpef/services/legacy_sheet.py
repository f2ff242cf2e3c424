"""Client for the older spreadsheet-backed schedule endpoint.

GET returns ``{"status": "success", "data": [{rowId, data, perito, ...}]}``
with ``rowId`` being the sheet row (data starts at row 2); POST with
``{"rowId", "observacao"}`` rewrites the outcome column of that row.
"""

import logging
from dataclasses import dataclass

import httpx

from sigpef.core import config
from sigpef.services.normalization import NormalizedAppointment, normalize_raw_appointment

logger = logging.getLogger(__name__)

FIRST_DATA_ROW = 2


class LegacySheetError(Exception):
    pass


@dataclass(frozen=True)
class LegacyRow:
    row_id: int
    record: NormalizedAppointment | None
    raw: dict
    error: str | None = None


class LegacySheetClient:
    def __init__(
        self,
        base_url: str = config.LEGACY_SHEET_URL,
        timeout: float = config.LEGACY_SHEET_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ):
        if not base_url:
            raise LegacySheetError('LEGACY_SHEET_URL não configurada.')
        self.base_url = base_url
        self.timeout = timeout
        self.transport = transport

    def _request(self, method: str, **kwargs) -> dict:
        try:
            # The sheet answers as text/plain, redirecting through the script host.
            with httpx.Client(transport=self.transport, timeout=self.timeout, follow_redirects=True) as client:
                response = client.request(method, self.base_url, **kwargs)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as exc:
            logger.warning('Legacy sheet %s failed: %s', method, exc)
            raise LegacySheetError(f'Falha ao acessar a planilha: {exc}') from exc
        except ValueError as exc:
            raise LegacySheetError('Resposta inválida da planilha.') from exc

        if not isinstance(payload, dict) or payload.get('status') != 'success':
            message = payload.get('message') if isinstance(payload, dict) else None
            raise LegacySheetError(message or 'Erro desconhecido na planilha.')
        return payload

    def fetch_rows(self) -> list[LegacyRow]:
        payload = self._request('GET')
        rows = []
        for index, raw in enumerate(payload.get('data') or []):
            fallback_id = index + FIRST_DATA_ROW
            if not isinstance(raw, dict):
                rows.append(LegacyRow(row_id=fallback_id, record=None, raw={'value': raw}, error='row is not an object'))
                continue
            try:
                row_id = int(raw.get('rowId') or fallback_id)
            except (TypeError, ValueError):
                rows.append(LegacyRow(row_id=fallback_id, record=None, raw=raw, error=f'invalid rowId: {raw.get("rowId")!r}'))
                continue
            result = normalize_raw_appointment(raw)
            rows.append(LegacyRow(row_id=row_id, record=result.value, raw=raw, error=result.error))
        return rows

    def update_observacao(self, row_id: int, observacao: str) -> None:
        if row_id < FIRST_DATA_ROW:
            raise LegacySheetError('Invalid Row ID')
        self._request('POST', json={'rowId': row_id, 'observacao': observacao})
