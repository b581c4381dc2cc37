"""
Tests for the LLM-backed suggestion service.

The router is mocked; no model is called.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from maintenance.schemas import EquipmentRecord
from maintenance.services.suggestion_service import (
    LLMSuggestionService,
    extract_similar_ids,
    normalize_generated_steps,
    order_similar_ids,
    parse_json_payload,
)
from shared.errors import SuggestionServiceError
from shared.llm_router import LLMResponse, ModelTier, Provider, TaskType


def _response(content="", success=True, images=None, error=None) -> LLMResponse:
    return LLMResponse(
        content=content,
        provider=Provider.OPENROUTER,
        model="test-model",
        tier=ModelTier.CLOUD_STANDARD,
        latency_ms=5,
        success=success,
        error=error,
        images=images,
    )


def _service(response: LLMResponse, image_sink=None) -> tuple[LLMSuggestionService, MagicMock]:
    router = MagicMock()
    router.invoke = AsyncMock(return_value=response)
    return LLMSuggestionService(router=router, image_sink=image_sink), router


@pytest.fixture
def reference() -> EquipmentRecord:
    return EquipmentRecord(id="ref", name="Domo PTZ Entrada", type="Domo PTZ", brand="Hikvision", model="DS-2")


@pytest.fixture
def pool() -> list[EquipmentRecord]:
    return [
        EquipmentRecord(id="a", name="Domo PTZ Patio", type="Domo PTZ", brand="Hikvision", model="DS-2"),
        EquipmentRecord(id="b", name="Cámara Bala", type="Bala", brand="Dahua", model="B1"),
    ]


# =============================================================================
# Answer parsing
# =============================================================================


class TestParsing:
    def test_code_fences_tolerated(self):
        assert parse_json_payload('```json\n{"similar_ids": ["a"]}\n```') == {"similar_ids": ["a"]}

    def test_non_json(self):
        assert parse_json_payload("no puedo ayudar con eso") is None

    def test_extract_ids_from_objects(self):
        assert extract_similar_ids([{"id": "a"}, {"name": "sin id"}, "b"]) == ["a", "b"]

    def test_order_keeps_reference_first_and_drops_outsiders(self):
        assert order_similar_ids("ref", ["b", "zzz", "ref", "b", "a"], {"a", "b"}) == ["ref", "b", "a"]

    def test_steps_normalized(self):
        steps = normalize_generated_steps({"steps": [
            {"step": " Limpiar ", "priority": "ALTA", "percentage": "40"},
            {"step": "Revisar", "priority": "urgente", "percentage": 180},
            {"step": "", "priority": "media"},
            "texto suelto",
        ]})

        assert steps == [
            {"step": "Limpiar", "priority": "alta", "percentage": 40},
            {"step": "Revisar", "priority": "baja", "percentage": 100},
        ]


# =============================================================================
# Similar equipment
# =============================================================================


class TestFindSimilar:
    async def test_empty_pool_skips_model(self, reference):
        service, router = _service(_response())

        assert await service.find_similar_equipment(reference, []) == ["ref"]
        router.invoke.assert_not_called()

    async def test_answer_normalized(self, reference, pool):
        service, router = _service(_response('{"similar_ids": ["a", "x"]}'))

        assert await service.find_similar_equipment(reference, pool) == ["ref", "a"]
        assert router.invoke.call_args.args[0] == TaskType.SIMILARITY_MATCHING
        assert router.invoke.call_args.kwargs["json_mode"] is True

    async def test_invalid_answer_falls_back_to_reference(self, reference, pool):
        service, _ = _service(_response("lo siento"))

        assert await service.find_similar_equipment(reference, pool) == ["ref"]

    async def test_router_failure_raises(self, reference, pool):
        service, _ = _service(_response(success=False, error="timeout"))

        with pytest.raises(SuggestionServiceError):
            await service.find_similar_equipment(reference, pool)


# =============================================================================
# Steps and images
# =============================================================================


class TestGenerateSteps:
    async def test_steps_returned(self, reference):
        service, _ = _service(_response('{"steps": [{"step": "Limpiar lente", "priority": "media", "percentage": 50}]}'))

        steps = await service.generate_protocol_steps(reference.descriptor())

        assert steps == [{"step": "Limpiar lente", "priority": "media", "percentage": 50}]

    async def test_no_valid_steps_raises(self, reference):
        service, _ = _service(_response('{"steps": []}'))

        with pytest.raises(SuggestionServiceError):
            await service.generate_protocol_steps(reference.descriptor())


class TestGenerateStepImage:
    async def test_data_uri_stored_through_sink(self, reference):
        sink = MagicMock()
        sink.store_data_uri = AsyncMock(return_value="/images/abc.png")
        service, router = _service(_response(images=["data:image/png;base64,AAAA"]), image_sink=sink)

        image_ref = await service.generate_step_image(reference.descriptor(), "Limpiar lente")

        assert image_ref == "/images/abc.png"
        sink.store_data_uri.assert_awaited_once_with("data:image/png;base64,AAAA", source="generated")
        assert router.invoke.call_args.args[0] == TaskType.STEP_ILLUSTRATION

    async def test_url_returned_as_is_without_sink(self, reference):
        service, _ = _service(_response(images=["https://cdn.example.com/x.png"]))

        assert await service.generate_step_image(reference.descriptor(), "Paso") == "https://cdn.example.com/x.png"

    async def test_no_image_raises(self, reference):
        service, _ = _service(_response(content="sin imagen", images=None))

        with pytest.raises(SuggestionServiceError):
            await service.generate_step_image(reference.descriptor(), "Paso")
