"""
Clinical data fetcher for CDS services.

Queries the EHR's FHIR server (the `fhirServer` sent with the hook request)
for Condition resources with a given SNOMED CT code.

Failure policy: every upstream problem (timeout, connection error, non-200
status, non-JSON or non-Bundle body) is logged and reported as None. The
caller decides what "no data" means; a failed fetch never fails the hook.

Example query:
  GET https://launch.smarthealthit.org/v/r2/fhir/Condition
      ?patient=smart-1288992&code=http://snomed.info/sct|1201005
"""

import json
import logging
import os
import time

import httpx

logger = logging.getLogger(__name__)

SNOMED_SYSTEM = 'http://snomed.info/sct'

# SNOMED CT: Benign essential hypertension
HYPERTENSION_CODE = '1201005'

# Timeout for the upstream query (seconds)
FETCH_TIMEOUT_SECONDS = float(os.environ.get('CDS_FHIR_TIMEOUT', '2.0'))


def _read_within(resp, deadline, url):
    """Read the response body, giving up once the deadline has passed."""
    chunks = []
    for chunk in resp.iter_bytes():
        if time.monotonic() > deadline:
            logger.warning(f'upstream_fetch_failure: Condition query to {url} exceeded its deadline')
            return None
        chunks.append(chunk)
    return b''.join(chunks)


def fetch_conditions(fhir_server: str | None, patient_id: str | None,
                     access_token: str | None = None,
                     code: str = HYPERTENSION_CODE,
                     timeout: float = FETCH_TIMEOUT_SECONDS) -> dict | None:
    """
    Search the FHIR server for the patient's Conditions with a SNOMED code.

    httpx timeouts apply per phase (connect, each read), so the body is
    streamed and checked against one overall deadline as data arrives.
    A server that stops sending entirely is cut off by the read timeout.

    Args:
        fhir_server: Base URL of the FHIR server
        patient_id: FHIR id of the patient in context
        access_token: Optional bearer token from `fhirAuthorization`
        code: SNOMED CT code to filter on
        timeout: Deadline for the whole request in seconds

    Returns:
        The search Bundle as a dict, or None if nothing usable came back.
    """
    if not fhir_server or not patient_id:
        logger.warning('Condition fetch skipped: fhirServer or patientId missing')
        return None

    url = f'{fhir_server.rstrip("/")}/Condition'
    headers = {'Accept': 'application/json+fhir'}
    if access_token:
        headers['Authorization'] = f'Bearer {access_token}'
    params = {'patient': patient_id, 'code': f'{SNOMED_SYSTEM}|{code}'}

    deadline = time.monotonic() + timeout
    try:
        with httpx.stream('GET', url, params=params, headers=headers, timeout=timeout) as resp:
            if resp.status_code != 200:
                logger.warning(f'upstream_fetch_failure: Condition query to {url} returned {resp.status_code}')
                return None
            body = _read_within(resp, deadline, url)
    except httpx.TimeoutException as e:
        logger.warning(f'upstream_fetch_failure: Condition query to {url} timed out: {e}')
        return None
    except httpx.HTTPError as e:
        logger.warning(f'upstream_fetch_failure: Condition query to {url} failed: {e}')
        return None

    if body is None:
        return None

    try:
        data = json.loads(body)
    except ValueError as e:
        logger.warning(f'upstream_fetch_failure: Condition query to {url} returned invalid JSON: {e}')
        return None

    if not isinstance(data, dict) or data.get('resourceType') != 'Bundle':
        logger.info('Response did not include Bundle')
        return None

    logger.debug(f'Condition query to {url} returned {len(data.get("entry") or [])} entries')
    return data
