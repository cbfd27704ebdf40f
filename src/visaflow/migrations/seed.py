"""Fixed case status catalog and the seeding step."""

from __future__ import annotations

from datetime import UTC, datetime
from logging import getLogger
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from visaflow.models import CaseStatus

logger = getLogger(__name__)

# Position of each code in the linear happy path; None means the status can
# occur anywhere (interruptions, renewals, gazette side steps).
ORDER_NUMBER_MAPPING: dict[str, int | None] = {
    "em_preparacao": 1,
    "em_tramite": 2,
    "encaminhado_analise": 3,
    "proposta_deferimento": 4,
    "deferido": 5,
    "publicado_dou": 6,
    "emissao_vitem": 7,
    "entrada_brasil": 8,
    "rnm": 9,
    "em_renovacao": 10,
    "pedido_cancelamento": 11,
    "pedido_arquivamento": 12,
    "pedido_cancelado": 13,
    "exigencia": None,
    "juntada_documento": None,
    "nova_solicitacao_visto": None,
    "diario_oficial": None,
    "em_analise_tecnica": None,
}

SEED_CASE_STATUSES: list[dict[str, Any]] = [
    {
        "code": "em_preparacao",
        "name": "Em Preparação",
        "name_en": "In Preparation",
        "description": "Processo em fase de preparação de documentos",
        "category": "preparation",
        "color": "#3B82F6",
        "sort_order": 1,
    },
    {
        "code": "em_tramite",
        "name": "Em Trâmite",
        "name_en": "In Progress",
        "description": "Processo protocolado e em andamento",
        "category": "in_progress",
        "color": "#FBBF24",
        "sort_order": 2,
        "fillable_fields": ["protocol_number"],
    },
    {
        "code": "encaminhado_analise",
        "name": "Encaminhado a análise",
        "name_en": "Forwarded for Analysis",
        "description": "Processo encaminhado para análise do órgão",
        "category": "review",
        "color": "#F97316",
        "sort_order": 3,
    },
    {
        "code": "exigencia",
        "name": "Exigência",
        "name_en": "Requirements Requested",
        "description": "Órgão solicitou documentos ou informações adicionais",
        "category": "review",
        "color": "#F59E0B",
        "sort_order": 4,
        "fillable_fields": ["deadline_date"],
    },
    {
        "code": "juntada_documento",
        "name": "Juntada de documento",
        "name_en": "Document Submission",
        "description": "Documentos complementares juntados ao processo",
        "category": "in_progress",
        "color": "#A855F7",
        "sort_order": 5,
    },
    {
        "code": "deferido",
        "name": "Deferido",
        "name_en": "Approved",
        "description": "Pedido deferido",
        "category": "approved",
        "color": "#10B981",
        "sort_order": 6,
    },
    {
        "code": "publicado_dou",
        "name": "Publicado no DOU",
        "name_en": "Published in Official Gazette",
        "description": "Deferimento publicado no Diário Oficial da União",
        "category": "completed",
        "color": "#059669",
        "sort_order": 7,
        "fillable_fields": ["dou_number", "dou_section", "dou_page", "dou_date"],
    },
    {
        "code": "emissao_vitem",
        "name": "Emissão do VITEM",
        "name_en": "VITEM Issuance",
        "description": "Visto temporário em emissão no consulado",
        "category": "completed",
        "color": "#14B8A6",
        "sort_order": 8,
        "fillable_fields": ["mre_office_number"],
    },
    {
        "code": "entrada_brasil",
        "name": "Entrada no Brasil",
        "name_en": "Entry to Brazil",
        "description": "Estrangeiro ingressou no Brasil",
        "category": "completed",
        "color": "#0EA5E9",
        "sort_order": 9,
    },
    {
        "code": "rnm",
        "name": "Registro Nacional Migratório (RNM)",
        "name_en": "National Migration Registry",
        "description": "Registro junto à Polícia Federal",
        "category": "completed",
        "color": "#6366F1",
        "sort_order": 10,
        "fillable_fields": ["appointment_date_time", "rnm_number", "rnm_deadline"],
    },
    {
        "code": "em_renovacao",
        "name": "Em Renovação",
        "name_en": "Under Renewal",
        "description": "Autorização em processo de renovação",
        "category": "in_progress",
        "color": "#8B5CF6",
        "sort_order": 11,
    },
    {
        "code": "nova_solicitacao_visto",
        "name": "Nova Solicitação de Visto",
        "name_en": "New Visa Request",
        "description": "Nova solicitação de visto iniciada",
        "category": "preparation",
        "color": "#60A5FA",
        "sort_order": 12,
    },
    {
        "code": "pedido_cancelamento",
        "name": "Pedido de Cancelamento",
        "name_en": "Cancellation Request",
        "description": "Solicitado o cancelamento do processo",
        "category": "cancelled",
        "color": "#EF4444",
        "sort_order": 13,
    },
    {
        "code": "pedido_arquivamento",
        "name": "Pedido de Arquivamento",
        "name_en": "Archive Request",
        "description": "Solicitado o arquivamento do processo",
        "category": "cancelled",
        "color": "#F87171",
        "sort_order": 14,
    },
    {
        "code": "pedido_cancelado",
        "name": "Pedido cancelado",
        "name_en": "Request Cancelled",
        "description": "Processo cancelado",
        "category": "cancelled",
        "color": "#DC2626",
        "sort_order": 15,
    },
    {
        "code": "proposta_deferimento",
        "name": "Proposta de Deferimento",
        "name_en": "Proposal for Approval",
        "description": "Órgão emitiu proposta de deferimento",
        "category": "review",
        "color": "#84CC16",
        "sort_order": 16,
    },
    {
        "code": "diario_oficial",
        "name": "Diário Oficial",
        "name_en": "Official Gazette",
        "description": "Aguardando publicação no Diário Oficial",
        "category": "review",
        "color": "#22C55E",
        "sort_order": 17,
    },
]


def seed_case_statuses(session: Session) -> dict[str, int]:
    """Insert catalog entries missing by code; existing entries are left untouched."""
    existing = set(session.execute(select(CaseStatus.code)).scalars().all())
    inserted = 0
    skipped = 0
    now = datetime.now(UTC)
    for entry in SEED_CASE_STATUSES:
        if entry["code"] in existing:
            skipped += 1
            continue
        session.add(
            CaseStatus(
                order_number=ORDER_NUMBER_MAPPING.get(entry["code"]),
                is_active=True,
                created_at=now,
                updated_at=now,
                **entry,
            )
        )
        inserted += 1
    session.flush()
    logger.info("Case statuses: %d inserted, %d already present", inserted, skipped)
    return {"inserted": inserted, "skipped": skipped}
