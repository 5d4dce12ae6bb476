# SPDX-License-Identifier: Apache-2.0
"""Required-field rules of the four assessment templates."""
from __future__ import annotations

from dataclasses import dataclass, field

from recboard.models import Protocol

YES_NO_UNABLE = ("yes", "no", "unable")
YES_NO = ("yes", "no")
REVIEW_RECOMMENDATIONS = ("approved", "minor", "major", "disapproved")
CONSENT_RECOMMENDATIONS = (
    "Approved",
    "Minor Modifications Required",
    "Major Modifications Required",
    "Disapproved",
)

HEADER_FIELDS = ("submission_date", "title", "study_site", "principal_investigator", "sponsor")


@dataclass(frozen=True)
class FormTemplate:
    form_type: str
    code_field: str
    questions: tuple[str, ...]
    answers: tuple[str, ...]
    choices: dict[str, tuple[str, ...]] = field(default_factory=dict)
    required_text: tuple[str, ...] = ()
    recommendation_field: str = "recommendation"
    decision_map: dict[str, str] = field(default_factory=dict)

    @property
    def header_fields(self) -> tuple[str, ...]:
        return (self.code_field,) + HEADER_FIELDS


_REVIEW_DECISIONS = {
    "approved": "approve",
    "minor": "revisions-required",
    "major": "revisions-required",
    "disapproved": "disapprove",
}

TEMPLATES: dict[str, FormTemplate] = {
    "protocol-review": FormTemplate(
        form_type="protocol-review",
        code_field="protocol_code",
        questions=(
            "social_value",
            "study_objectives",
            "literature_review",
            "research_design",
            "data_collection",
            "inclusion_exclusion",
            "withdrawal_criteria",
            "facilities",
            "investigator_qualification",
            "privacy_confidentiality",
            "conflict_of_interest",
            "human_participants",
            "vulnerable_populations",
            "voluntary_recruitment",
            "risk_benefit",
            "informed_consent",
            "community_considerations",
            "collaborative_terms",
        ),
        answers=YES_NO_UNABLE,
        choices={"type_of_review": ("expedited", "full"), "recommendation": REVIEW_RECOMMENDATIONS},
        decision_map=_REVIEW_DECISIONS,
    ),
    "informed-consent": FormTemplate(
        form_type="informed-consent",
        code_field="protocol_code",
        questions=tuple(f"q{i}" for i in range(1, 18)),
        answers=YES_NO_UNABLE,
        choices={"recommendation": CONSENT_RECOMMENDATIONS},
        required_text=("recommendation_justification",),
        decision_map={
            "Approved": "approve",
            "Minor Modifications Required": "revisions-required",
            "Major Modifications Required": "revisions-required",
            "Disapproved": "disapprove",
        },
    ),
    "exemption-checklist": FormTemplate(
        form_type="exemption-checklist",
        code_field="protocol_code",
        questions=(
            "involves_human_participants",
            "involves_non_identifiable_tissue",
            "involves_public_data",
            "involves_interaction",
            "quality_assurance",
            "public_service_evaluation",
            "public_health_surveillance",
            "educational_evaluation",
            "consumer_acceptability",
            "surveys_questionnaire",
            "interviews_focus_group",
            "public_observations",
            "existing_data",
            "audio_video",
            "foreseeable_risk",
            "risk_vulnerable_groups",
            "risk_sensitive_topics",
            "risk_use_of_drugs",
            "risk_invasive_procedure",
            "risk_physical_distress",
            "risk_psychological_distress",
            "risk_deception",
            "risk_access_data",
            "risk_conflict_interest",
            "risk_other_dilemmas",
            "risk_blood_sampling",
        ),
        answers=YES_NO,
        choices={
            "data_anonymization": ("anonymized", "identifiable", "de-identified"),
            "decision": ("qualified", "unqualified"),
        },
        required_text=("decision_justification",),
        recommendation_field="decision",
        decision_map={"qualified": "approve", "unqualified": "revisions-required"},
    ),
    "iacuc-review": FormTemplate(
        form_type="iacuc-review",
        code_field="iacuc_code",
        questions=(
            "scientific_value",
            "study_objectives",
            "literature_review",
            "research_design",
            "data_collection",
            "inclusion_exclusion",
            "withdrawal_criteria",
            "facilities_infrastructure",
            "investigator_qualifications",
            "privacy_confidentiality",
            "conflict_of_interest",
            "animal_source",
            "housing_care",
            "restraint_procedures",
            "anesthesia_analgesia",
            "post_procedure_monitoring",
            "euthanasia",
            "biological_agent_collection",
            "examination_methods",
            "surgical_procedures",
            "humane_endpoints",
            "potential_hazards",
            "waste_disposal",
        ),
        answers=YES_NO_UNABLE,
        choices={"type_of_review": ("expedited", "full"), "recommendation": REVIEW_RECOMMENDATIONS},
        decision_map=_REVIEW_DECISIONS,
    ),
}


def get_template(form_type: str) -> FormTemplate:
    try:
        return TEMPLATES[form_type]
    except KeyError:
        raise KeyError(f"Unknown form type: {form_type}") from None


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate(form_type: str, data: dict) -> list[dict]:
    """Every problem with ``data`` as ``{field, message}``; empty when valid."""
    template = get_template(form_type)
    problems: list[dict] = []
    for name in template.header_fields + template.required_text:
        if _blank(data.get(name)):
            problems.append({"field": name, "message": "This field is required"})
    checks = [(q, template.answers) for q in template.questions] + list(template.choices.items())
    for name, allowed in checks:
        value = data.get(name)
        if _blank(value):
            problems.append({"field": name, "message": "This field is required"})
        elif value not in allowed:
            problems.append({"field": name, "message": f"Must be one of: {', '.join(allowed)}"})
    return problems


def assignment_decision(form_type: str, data: dict) -> str | None:
    """Map the reviewer's recommendation onto the assignment decision."""
    template = get_template(form_type)
    return template.decision_map.get(data.get(template.recommendation_field))


def blank_form(form_type: str, protocol: Protocol) -> dict:
    """Header fields prefilled from the protocol."""
    template = get_template(form_type)
    return {
        template.code_field: protocol.permanent_code or protocol.temporary_code,
        "submission_date": protocol.created_at.date().isoformat(),
        "title": protocol.title,
        "principal_investigator": protocol.principal_investigator,
    }
