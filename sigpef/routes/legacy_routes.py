from datetime import date

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from sigpef.auth.capabilities import Capabilities, Capability
from sigpef.auth.dependencies import require
from sigpef.core import config
from sigpef.database import get_db
from sigpef.services.audit import log_system_action, request_ip
from sigpef.services.legacy_sheet import LegacySheetClient, LegacySheetError
from sigpef.services.normalization import normalize_observacao

router = APIRouter(tags=['legacy'])


class LegacyRowResponse(BaseModel):
    row_id: int
    data: date | None = None
    perito: str = ''
    especialidade: str = ''
    periciado: str = ''
    observacao: str = ''
    error: str | None = None


class LegacyUpdateRequest(BaseModel):
    observacao: str

    @field_validator('observacao')
    @classmethod
    def validate_observacao(cls, value: str) -> str:
        result = normalize_observacao(value)
        if not result.ok:
            raise ValueError('Status inválido.')
        return result.value


def get_legacy_client() -> LegacySheetClient:
    try:
        return LegacySheetClient(
            base_url=config.LEGACY_SHEET_URL,
            timeout=config.LEGACY_SHEET_TIMEOUT_SECONDS,
        )
    except LegacySheetError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


@router.get('/rows', response_model=list[LegacyRowResponse])
def list_legacy_rows(
    capabilities: Capabilities = Depends(require(Capability.VIEW)),
    client: LegacySheetClient = Depends(get_legacy_client),
):
    try:
        rows = client.fetch_rows()
    except LegacySheetError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    response = []
    for row in rows:
        if row.record is None:
            response.append(LegacyRowResponse(row_id=row.row_id, error=row.error))
            continue
        response.append(
            LegacyRowResponse(
                row_id=row.row_id,
                data=date.fromisoformat(row.record.data),
                perito=row.record.perito,
                especialidade=row.record.especialidade,
                periciado=row.record.periciado,
                observacao=row.record.observacao,
            )
        )
    return response


@router.post('/rows/{row_id}', status_code=status.HTTP_204_NO_CONTENT)
def update_legacy_row(
    row_id: int,
    data: LegacyUpdateRequest,
    capabilities: Capabilities = Depends(require(Capability.EDIT)),
    client: LegacySheetClient = Depends(get_legacy_client),
    ip_address: str = Depends(request_ip),
    db: Session = Depends(get_db),
):
    try:
        client.update_observacao(row_id, data.observacao)
    except LegacySheetError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    log_system_action(
        db,
        capabilities.email,
        'EDIÇÃO PLANILHA',
        f"Linha {row_id}: observação '{data.observacao or 'PENDENTE'}'",
        ip_address,
    )
