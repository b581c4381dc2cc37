"""
Guardian Shield - Suggestion Service.

AI collaborator of the consolidation workflow:
- find_similar_equipment: which unlinked equipment can share a protocol
- generate_protocol_steps: draft checklist for an equipment descriptor
- generate_step_image: illustration for a single step

The workflow depends only on the SuggestionService protocol; the LLM-backed
implementation routes through shared.llm_router. No call is retried
automatically: failures surface as SuggestionServiceError and the operator
decides whether to try again.
"""

import json
import logging
import re
from typing import Any, Protocol

from maintenance.prompts.suggestions import (
    build_similarity_messages,
    build_step_image_messages,
    build_steps_messages,
)
from maintenance.schemas import EquipmentRecord, StepDraft
from shared.config import DEFAULT_STEP_PRIORITY, PRIORITY_VALUES
from shared.errors import SuggestionServiceError
from shared.llm_router import LLMRouter, TaskType, get_llm_router
from shared.logging_config import truncate_message

logger = logging.getLogger(__name__)

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class SuggestionService(Protocol):
    async def find_similar_equipment(
        self,
        reference: EquipmentRecord,
        candidate_pool: list[EquipmentRecord],
    ) -> list[str]: ...

    async def generate_protocol_steps(self, descriptor: dict[str, Any]) -> list[StepDraft]: ...

    async def generate_step_image(self, descriptor: dict[str, Any], step_text: str) -> str: ...


class ImageSink(Protocol):
    """Persists a generated data URI and returns the public URL to use instead."""

    async def store_data_uri(self, data_uri: str, *, source: str = "generated") -> str: ...


def parse_json_payload(content: str) -> Any | None:
    """Parse model output as JSON, tolerating markdown code fences."""
    if not content:
        return None
    cleaned = _CODE_FENCE_RE.sub("", content.strip())
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        logger.warning(f"Model returned non-JSON content: {truncate_message(content)}")
        return None


def extract_similar_ids(payload: Any) -> list[str]:
    """Accept {"similar_ids": [...]}, a bare list of ids or a list of equipment objects."""
    if isinstance(payload, dict):
        payload = payload.get("similar_ids") or payload.get("equipments") or []
    if not isinstance(payload, list):
        return []

    ids: list[str] = []
    for item in payload:
        if isinstance(item, dict):
            item = item.get("id")
        if isinstance(item, (str, int)) and str(item):
            ids.append(str(item))
    return ids


def order_similar_ids(
    reference_id: str,
    returned_ids: list[str],
    pool_ids: set[str],
) -> list[str]:
    """
    Normalize a similarity answer.

    Ids outside the pool are dropped, duplicates removed and the reference
    is always first.
    """
    ordered = [reference_id]
    for equipment_id in returned_ids:
        if equipment_id in pool_ids and equipment_id not in ordered:
            ordered.append(equipment_id)
    return ordered


def normalize_generated_steps(payload: Any) -> list[StepDraft]:
    """Turn the model answer into step drafts with valid priority and percentage."""
    if isinstance(payload, dict):
        payload = payload.get("steps") or []
    if not isinstance(payload, list):
        return []

    steps: list[StepDraft] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        text = str(item.get("step") or "").strip()
        if not text:
            continue

        priority = str(item.get("priority") or "").strip().lower()
        if priority not in PRIORITY_VALUES:
            priority = DEFAULT_STEP_PRIORITY

        try:
            percentage = int(round(float(item.get("percentage") or 0)))
        except (TypeError, ValueError):
            percentage = 0

        steps.append(StepDraft(
            step=text,
            priority=priority,
            percentage=max(0, min(100, percentage)),
        ))
    return steps


class LLMSuggestionService:
    """SuggestionService backed by the LLM router (OpenRouter, optional Ollama fallback)."""

    def __init__(self, router: LLMRouter | None = None, image_sink: ImageSink | None = None):
        self.router = router or get_llm_router()
        self.image_sink = image_sink

    async def find_similar_equipment(
        self,
        reference: EquipmentRecord,
        candidate_pool: list[EquipmentRecord],
    ) -> list[str]:
        if not candidate_pool:
            logger.info(
                "Empty candidate pool, similar list is the reference alone",
                extra={"equipment_id": reference.id},
            )
            return [reference.id]

        messages = build_similarity_messages(
            reference.descriptor(),
            [candidate.descriptor() for candidate in candidate_pool],
        )
        response = await self.router.invoke(
            TaskType.SIMILARITY_MATCHING,
            messages,
            temperature=0.1,
            json_mode=True,
        )
        if not response.success:
            raise SuggestionServiceError(
                "No se pudieron obtener equipos similares. Intente nuevamente.",
                context={"error": response.error},
            )

        returned_ids = extract_similar_ids(parse_json_payload(response.content))
        ordered = order_similar_ids(
            reference.id,
            returned_ids,
            {candidate.id for candidate in candidate_pool},
        )

        logger.info(
            f"Similarity answer: returned={len(returned_ids)}, kept={len(ordered) - 1}",
            extra={"equipment_id": reference.id},
        )
        return ordered

    async def generate_protocol_steps(self, descriptor: dict[str, Any]) -> list[StepDraft]:
        response = await self.router.invoke(
            TaskType.PROTOCOL_GENERATION,
            build_steps_messages(descriptor),
            temperature=0.4,
            max_tokens=3000,
            json_mode=True,
        )
        if not response.success:
            raise SuggestionServiceError(
                "Ocurrió un error al generar el protocolo.",
                context={"error": response.error},
            )

        steps = normalize_generated_steps(parse_json_payload(response.content))
        if not steps:
            raise SuggestionServiceError(
                "El servicio de IA no devolvió pasos válidos para el protocolo.",
                context={"raw": truncate_message(response.content)},
            )

        logger.info(
            f"Generated {len(steps)} protocol steps",
            extra={"equipment_id": descriptor.get("id")},
        )
        return steps

    async def generate_step_image(self, descriptor: dict[str, Any], step_text: str) -> str:
        response = await self.router.invoke(
            TaskType.STEP_ILLUSTRATION,
            build_step_image_messages(descriptor, step_text),
            temperature=0.7,
        )
        if not response.success or not response.images:
            raise SuggestionServiceError(
                "No se pudo generar la imagen para el paso.",
                context={"error": response.error or "no image returned"},
            )

        image_ref = response.images[0]
        if self.image_sink is not None and image_ref.startswith("data:"):
            image_ref = await self.image_sink.store_data_uri(image_ref, source="generated")
        return image_ref
