"""
In-memory step buffer edits shared by the grouping engine and the protocol editor.

All functions mutate the given list of StepDraft in place and validate
their input before touching it.
"""

from maintenance.schemas import StepDraft
from shared.config import PRIORITY_VALUES
from shared.errors import WorkflowValidationError


def check_index(steps: list[StepDraft], index: int) -> StepDraft:
    if not 0 <= index < len(steps):
        raise WorkflowValidationError(
            "El paso indicado no existe.",
            context={"index": index, "total": len(steps)},
        )
    return steps[index]


def _check_percent(name: str, value: int) -> int:
    if not 0 <= value <= 100:
        raise WorkflowValidationError(
            f"El campo '{name}' debe estar entre 0 y 100.",
            context={name: value},
        )
    return value


def edit_step(
    steps: list[StepDraft],
    index: int,
    *,
    step: str | None = None,
    priority: str | None = None,
    percentage: int | None = None,
    completion: int | None = None,
    notes: str | None = None,
) -> StepDraft:
    """Update the given fields of one step; None leaves a field unchanged."""
    draft = check_index(steps, index)

    if step is not None and not step.strip():
        raise WorkflowValidationError("El texto del paso no puede estar vacío.")
    if priority is not None and priority not in PRIORITY_VALUES:
        raise WorkflowValidationError(
            "Prioridad inválida. Use baja, media o alta.",
            context={"priority": priority},
        )
    if percentage is not None:
        _check_percent("percentage", percentage)
    if completion is not None:
        _check_percent("completion", completion)

    if step is not None:
        draft["step"] = step.strip()
    if priority is not None:
        draft["priority"] = priority
    if percentage is not None:
        draft["percentage"] = percentage
    if completion is not None:
        draft["completion"] = completion
    if notes is not None:
        draft["notes"] = notes
    return draft


def delete_step(steps: list[StepDraft], index: int) -> StepDraft:
    check_index(steps, index)
    return steps.pop(index)


def set_step_image(steps: list[StepDraft], index: int, image_ref: str) -> StepDraft:
    draft = check_index(steps, index)
    if not image_ref:
        raise WorkflowValidationError("La referencia de imagen está vacía.")
    draft["image_url"] = image_ref
    return draft


def remove_step_image(steps: list[StepDraft], index: int) -> StepDraft:
    draft = check_index(steps, index)
    draft["image_url"] = ""
    return draft
