# SPDX-License-Identifier: Apache-2.0
"""Assessment autosave, submit, approve, return."""
from fastapi import APIRouter, Depends, Query

from recboard.core.context import Actor, get_actor
from recboard.database import get_store
from recboard.schemas import FormData, FormReturn
from recboard.services import assessment_service, form_templates, protocol_service
from recboard.store import RecordStore

router = APIRouter(prefix="/protocols/{protocol_id}/assessments", tags=["assessments"])


@router.get("")
def assessments_list(protocol_id: str, store: RecordStore = Depends(get_store)):
    protocol_service.get_protocol(store, protocol_id)
    return [f.model_dump(mode="json") for f in assessment_service.list_forms(store, protocol_id)]


@router.get("/{form_type}")
def assessments_get(
    protocol_id: str,
    form_type: str,
    reviewer_id: str | None = Query(None, description="Defaults to the acting reviewer"),
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    form = assessment_service.get_form(store, protocol_id, form_type, reviewer_id or actor.id)
    return {**form.model_dump(mode="json"), "required_fields": list(_required(form_type))}


def _required(form_type: str) -> tuple[str, ...]:
    if form_type not in form_templates.TEMPLATES:
        return ()
    template = form_templates.get_template(form_type)
    return template.header_fields + template.required_text + template.questions + tuple(template.choices)


@router.put("/{form_type}")
def assessments_autosave(
    protocol_id: str,
    form_type: str,
    body: FormData,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    """Debounced autosave from the reviewer's editor."""
    form = assessment_service.autosave(store, actor, protocol_id, form_type, actor.id, body.form_data)
    return form.model_dump(mode="json")


@router.post("/{form_type}/submit")
def assessments_submit(
    protocol_id: str,
    form_type: str,
    body: FormData,
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    form = assessment_service.submit(store, actor, protocol_id, form_type, actor.id, body.form_data)
    return form.model_dump(mode="json")


@router.post("/{form_type}/approve")
def assessments_approve(
    protocol_id: str,
    form_type: str,
    reviewer_id: str = Query(...),
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    form = assessment_service.approve(store, actor, protocol_id, form_type, reviewer_id)
    return form.model_dump(mode="json")


@router.post("/{form_type}/return")
def assessments_return(
    protocol_id: str,
    form_type: str,
    body: FormReturn,
    reviewer_id: str = Query(...),
    store: RecordStore = Depends(get_store),
    actor: Actor = Depends(get_actor),
):
    form = assessment_service.return_form(store, actor, protocol_id, form_type, reviewer_id, body.reason)
    return form.model_dump(mode="json")
