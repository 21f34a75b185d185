"""
Decision handlers for the example CDS services.

Each handler takes a validated hook request (see cds.schemas) and returns a
list of Card objects. An empty list is a normal answer. Handlers raise
MalformedContextError when the payload is missing something they need; the
route turns that into an empty card list so the EHR workflow is never broken.
"""

import copy
import logging

from cds.cards import Card, Link, Source, Suggestion
from cds.fhir_fetch import fetch_conditions, HYPERTENSION_CODE

logger = logging.getLogger(__name__)

_TUTORIAL_WIKI = 'https://github.com/cerner/cds-services-tutorial/wiki'

PATIENT_VIEW_SOURCE = Source('CDS Service Tutorial', f'{_TUTORIAL_WIKI}/Patient-View-Service')
HYPERTENSION_SOURCE = Source('CDS Service Tutorial', f'{_TUTORIAL_WIKI}/Exercises')
ORDER_SELECT_SOURCE = Source('CDS Service Tutorial', f'{_TUTORIAL_WIKI}/Order-Select-Service')

SMART_LAUNCH_URL = 'https://engineering.cerner.com/smart-on-fhir-tutorial/example-smart-app/launch.html'

MEDICATION_ORDER_TYPES = ('MedicationRequest', 'MedicationOrder')

RXNORM_SYSTEM = 'http://www.nlm.nih.gov/research/umls/rxnorm'

# RxNorm: Aspirin 81 MG Oral Tablet
LOW_DOSE_ASPIRIN_CODE = '243670'
LOW_DOSE_ASPIRIN_DISPLAY = 'Aspirin 81 MG Oral Tablet'


class MalformedContextError(ValueError):
    """The hook request lacks data a handler needs to build its cards."""


# --- patient-view-example ---

def greeting_card(patient):
    """Build the 'Now seeing' card for a Patient resource."""
    if not isinstance(patient, dict):
        raise MalformedContextError('Patient resource is missing')

    names = patient.get('name') or []
    if not isinstance(names, list):
        raise MalformedContextError(f'Patient/{patient.get("id")} name is not a list')
    name = names[0] if names and isinstance(names[0], dict) else {}
    given = name.get('given') or []
    if isinstance(given, str):
        given = [given]
    family = name.get('family')
    # DSTU2 Patient.name.family is a list
    if isinstance(family, list):
        family = family[0] if family else None
    birth_date = patient.get('birthDate')

    if not isinstance(given, list) or not given or not isinstance(given[0], str):
        raise MalformedContextError(f'Patient/{patient.get("id")} has no given name')
    if not isinstance(family, str) or not family:
        raise MalformedContextError(f'Patient/{patient.get("id")} has no family name')
    if not isinstance(birth_date, str) or not birth_date:
        raise MalformedContextError(f'Patient/{patient.get("id")} has no birthDate')

    return Card(
        summary=f'Now seeing: {given[0]} {family}',
        detail=f'Patient birthdate: {birth_date}',
        indicator='info',
        source=PATIENT_VIEW_SOURCE,
        links=(
            Link('Learn more about CDS Hooks', 'http://cds-hooks.org', 'absolute'),
            Link('Launch SMART App!', SMART_LAUNCH_URL, 'smart'),
        ),
    )


def patient_greeting(hook_request):
    prefetch = hook_request.get('prefetch') or {}
    return [greeting_card(prefetch.get('requestedPatient'))]


# --- patient-view-hypertension ---

def _condition_text(condition):
    code = condition.get('code')
    if not isinstance(code, dict):
        return 'Hypertension'
    if isinstance(code.get('text'), str) and code['text']:
        return code['text']
    codings = code.get('coding')
    for coding in codings if isinstance(codings, list) else []:
        if isinstance(coding, dict) and isinstance(coding.get('display'), str) and coding['display']:
            return coding['display']
    return 'Hypertension'


def hypertension_flag(hook_request):
    """Warn when the patient's FHIR record holds a hypertension Condition."""
    context = hook_request.get('context') or {}
    patient_id = context.get('patientId')
    if not patient_id:
        raise MalformedContextError('context.patientId is missing')

    authorization = hook_request.get('fhirAuthorization') or {}
    bundle = fetch_conditions(
        hook_request.get('fhirServer'),
        patient_id,
        authorization.get('access_token'),
        code=HYPERTENSION_CODE,
    )
    if not bundle:
        return []

    entries = bundle.get('entry') or []
    if not isinstance(entries, list):
        logger.warning(f'upstream_fetch_failure: Condition Bundle entry is not a list for Patient/{patient_id}')
        return []

    for entry in entries:
        resource = entry.get('resource') if isinstance(entry, dict) else None
        if isinstance(resource, dict) and resource.get('resourceType') == 'Condition':
            return [Card(
                summary=f'Existing condition: {_condition_text(resource)}',
                indicator='warning',
                source=HYPERTENSION_SOURCE,
            )]

    logger.debug(f'No hypertension Condition found for Patient/{patient_id}')
    return []


# --- order-select-example ---

def _aspirin_concept():
    return {
        'text': LOW_DOSE_ASPIRIN_DISPLAY,
        'coding': [{
            'display': LOW_DOSE_ASPIRIN_DISPLAY,
            'system': RXNORM_SYSTEM,
            'code': LOW_DOSE_ASPIRIN_CODE,
        }],
    }


def medication_card(draft_order):
    """
    Card for a medication order the provider has selected.

    Affirms an order that is already low-dose aspirin; otherwise suggests
    swapping the ordered medication for it. The suggested resource is a copy,
    the draft order itself is left untouched.
    """
    concept = draft_order.get('medicationCodeableConcept')
    if not isinstance(concept, dict):
        raise MalformedContextError('medicationCodeableConcept is not a CodeableConcept')
    codings = concept.get('coding') or []
    if not isinstance(codings, list) or (codings and not isinstance(codings[0], dict)):
        raise MalformedContextError('medicationCodeableConcept.coding is not a list of Codings')
    ordered_code = codings[0].get('code') if codings else None

    if ordered_code == LOW_DOSE_ASPIRIN_CODE:
        return Card(
            summary='Currently prescribing a low-dose Aspirin',
            indicator='info',
            source=ORDER_SELECT_SOURCE,
        )

    replacement = copy.deepcopy(draft_order)
    replacement['medicationCodeableConcept'] = _aspirin_concept()

    return Card(
        summary='Reduce cardiovascular risks, prescribe daily 81 MG Aspirin',
        indicator='warning',
        source=ORDER_SELECT_SOURCE,
        suggestions=(
            Suggestion(
                label='Switch to low-dose Aspirin',
                actions=({
                    'type': 'create',
                    'description': 'Modifying existing medication order to be Aspirin',
                    'resource': replacement,
                },),
            ),
        ),
    )


def order_substitution(hook_request):
    context = hook_request.get('context') or {}
    draft_orders = context.get('draftOrders')
    if not isinstance(draft_orders, dict) or not draft_orders.get('entry'):
        raise MalformedContextError('context.draftOrders has no entries')
    entries = draft_orders['entry']
    if not isinstance(entries, list) or not isinstance(entries[0], dict):
        raise MalformedContextError('context.draftOrders.entry is not a list of entries')
    draft_order = entries[0].get('resource') or {}
    if not isinstance(draft_order, dict):
        raise MalformedContextError('context.draftOrders.entry[0].resource is not a resource')

    selections = context.get('selections') or []
    # A string would turn the membership test below into a substring match
    if not isinstance(selections, list):
        raise MalformedContextError('context.selections is not a list')
    resource_type = draft_order.get('resourceType')
    reference = f'{resource_type}/{draft_order.get("id")}'

    if resource_type not in MEDICATION_ORDER_TYPES:
        logger.info(f'malformed_context: draft order {reference} is not a medication order')
        return []
    if reference not in selections:
        logger.info(f'malformed_context: draft order {reference} is not in selections {selections}')
        return []
    if not draft_order.get('medicationCodeableConcept'):
        logger.info(f'malformed_context: draft order {reference} has no medicationCodeableConcept')
        return []

    return [medication_card(draft_order)]
