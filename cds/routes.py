"""
CDS Hooks service endpoints - Flask Blueprint.

  GET  /cds-services               discovery (service catalog)
  POST /cds-services/<service_id>  invoke a service, answers {"cards": [...]}

Every call goes through the bearer token gate (see cds.auth). Anything that
goes wrong after authentication is answered with a valid, possibly empty,
card list so the clinician's workflow in the EHR is never interrupted.
"""

import logging

from flask import Blueprint, request, jsonify
from marshmallow import ValidationError

from cds.auth import register_request_gate
from cds.cards import cards_response
from cds.catalog import get_services, get_service
from cds.handlers import (
    MalformedContextError, patient_greeting, hypertension_flag, order_substitution
)
from cds.schemas import HookRequestSchema

logger = logging.getLogger(__name__)

cds_blueprint = Blueprint('cds', __name__, url_prefix='/cds-services')

# service id -> handler(hook_request) -> [Card]
SERVICE_HANDLERS = {
    'patient-view-example': patient_greeting,
    'patient-view-hypertension': hypertension_flag,
    'order-select-example': order_substitution,
}

register_request_gate(cds_blueprint, discovery_endpoint='cds.discovery')


@cds_blueprint.route('', methods=['GET'])
def discovery():
    """Definitions of each CDS Service offered here."""
    return jsonify({'services': [s.to_dict() for s in get_services()]})


@cds_blueprint.route('/<service_id>', methods=['POST'])
def invoke_service(service_id):
    service = get_service(service_id)
    handler = SERVICE_HANDLERS.get(service_id)
    if service is None or handler is None:
        return jsonify({'error': f'Unknown CDS service: {service_id}'}), 404

    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        logger.warning(f'malformed_context: {service_id} called without a JSON object body')
        return jsonify(cards_response([]))

    try:
        hook_request = HookRequestSchema().load(body)
    except ValidationError as err:
        logger.warning(f'malformed_context: {service_id} request failed validation: {err.messages}')
        return jsonify(cards_response([]))

    if hook_request.get('hook') and hook_request['hook'] != service.hook:
        logger.warning(f'{service_id} expects hook {service.hook}, got {hook_request["hook"]}')

    try:
        cards = handler(hook_request)
    except MalformedContextError as e:
        logger.warning(f'malformed_context: {service_id}: {e}')
        cards = []

    logger.debug(f'{service_id} hookInstance={hook_request.get("hookInstance")} returned {len(cards)} card(s)')
    return jsonify(cards_response(cards))
