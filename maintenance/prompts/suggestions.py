"""
Prompt builders for the suggestion service.

Each builder returns chat messages in OpenAI format. Text tasks ask for a
single JSON object so the router can request ``response_format=json_object``.
"""

from typing import Any

SIMILARITY_SYSTEM_PROMPT = """You are an expert system for security-equipment maintenance. Your task is to identify a group of equipment that can share the same maintenance protocol based on FUZZY/SIMILARITY matching, not exact matching.

CRITICAL INSTRUCTIONS:
1. Prioritize function over exact text. Analyze 'name' and 'description' to understand what the equipment does. Same function means strong candidate.
2. Embrace variations in names. "Camara IP 8 MP", "Camara IP 4 MP" and "Camara IP 6 MP" belong together despite the megapixel difference.
3. Tolerate model differences. 'DS-2CD2543G0-IS' and 'DS-2CD2543G2-I' belong together.
4. Tolerate related types. 'Domo PTZ', 'Bala' and 'Mini Domo' are all cameras and can share a base protocol.

Only use ids from the candidate list. If nothing is similar, return an empty list.
Respond ONLY with a JSON object: {"similar_ids": ["<id>", ...]}"""

STEPS_SYSTEM_PROMPT = """Eres un técnico experto en mantenimiento de equipos electrónicos de seguridad (CCTV, control de acceso, detección de incendio).

Sugerirás un protocolo de mantenimiento completo y detallado para el equipo dado. El protocolo debe ser exhaustivo y profesional.

Incluye pasos específicos para la limpieza interna de los componentes:
- Apertura segura de la carcasa del equipo.
- Inspección visual de componentes internos (tarjetas, ventiladores, conectores) buscando polvo, corrosión o capacitores hinchados.
- Limpieza de tarjetas electrónicas con aire comprimido, alcohol isopropílico y cepillos antiestáticos, con las precauciones necesarias.
- Revisión y limpieza de sistemas de ventilación internos.

Cubre también la inspección y el mantenimiento externo.

Para cada paso define su prioridad (baja, media, alta) y un porcentaje estimado (0 a 100).
Responde SOLO con un objeto JSON: {"steps": [{"step": "...", "priority": "baja|media|alta", "percentage": 0}]}
Todo el texto, especialmente "step", debe estar en español."""

STEP_IMAGE_PROMPT_TEMPLATE = """Create a technical, photorealistic illustration showing a specific maintenance step for a piece of equipment.
- Equipment Name: "{name}"
- Brand: {brand}
- Model: {model}
- Maintenance Step to Illustrate: "{step}"

The image must be a clear, close-up, diagram-style photograph on a clean, solid white background. It must not contain any text, logos, or distracting elements. The primary focus should be on the specific action or component mentioned in the maintenance step."""


def _describe(equipment: dict[str, Any]) -> str:
    return (
        f"- ID: {equipment.get('id', '')}\n"
        f"  - Name: {equipment.get('name', '')}\n"
        f"  - Type: {equipment.get('type', '')}\n"
        f"  - Brand: {equipment.get('brand', '')}\n"
        f"  - Model: {equipment.get('model', '')}\n"
        f"  - Description: {equipment.get('description', '')}"
    )


def build_similarity_messages(
    reference: dict[str, Any],
    candidates: list[dict[str, Any]],
) -> list[dict[str, str]]:
    candidate_block = "\n".join(_describe(c) for c in candidates)
    user_prompt = (
        "Primary equipment to find matches for:\n"
        f"{_describe(reference)}\n\n"
        "Candidate equipment:\n"
        f"{candidate_block}"
    )
    return [
        {"role": "system", "content": SIMILARITY_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def build_steps_messages(descriptor: dict[str, Any]) -> list[dict[str, str]]:
    user_prompt = (
        f"Nombre del equipo: {descriptor.get('name', '')}\n"
        f"Tipo: {descriptor.get('type', '')}\n"
        f"Marca: {descriptor.get('brand', '')}\n"
        f"Modelo: {descriptor.get('model', '')}\n"
        f"Descripción del equipo: {descriptor.get('description', '')}"
    )
    return [
        {"role": "system", "content": STEPS_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def build_step_image_messages(descriptor: dict[str, Any], step_text: str) -> list[dict[str, str]]:
    prompt = STEP_IMAGE_PROMPT_TEMPLATE.format(
        name=descriptor.get("name", ""),
        brand=descriptor.get("brand", ""),
        model=descriptor.get("model", ""),
        step=step_text,
    )
    return [{"role": "user", "content": prompt}]
