"""
Test fixtures for the CDS Hooks services.
"""

import json
import os
import time
import pytest

import jwt
from cryptography.hazmat.primitives.asymmetric import ec

# Throwaway signing key standing in for the CDS client (the EHR)
TEST_ISSUER = 'https://ehr.example.org'
TEST_PRIVATE_KEY = ec.generate_private_key(ec.SECP384R1())
TEST_PUBLIC_JWK = json.loads(jwt.algorithms.ECAlgorithm.to_jwk(TEST_PRIVATE_KEY.public_key()))
TEST_PUBLIC_JWK.update({'kid': 'test-key-1', 'alg': 'ES384', 'use': 'sig'})

# Set test environment before importing app — main builds the verifier at import
os.environ['CDS_PUBLIC_JWK'] = json.dumps(TEST_PUBLIC_JWK)
os.environ['CDS_ALLOWED_ISSUERS'] = TEST_ISSUER
os.environ['CDS_CLOCK_TOLERANCE'] = '300'
os.environ['LOG_LEVEL'] = 'DEBUG'

BASE_URL = 'http://localhost'


@pytest.fixture
def public_jwk():
    """Public half of the test signing key as a JWK dict."""
    return dict(TEST_PUBLIC_JWK)


@pytest.fixture
def verifier(public_jwk):
    from cds.auth import TokenVerifier
    return TokenVerifier(public_jwk, issuers=[TEST_ISSUER], leeway=300)


@pytest.fixture
def app(verifier):
    """Create a test Flask application with the test key installed."""
    from main import app as flask_app
    from cds.auth import set_verifier, reset_verifier
    flask_app.config['TESTING'] = True
    set_verifier(verifier)
    yield flask_app
    reset_verifier()


@pytest.fixture
def client(app):
    """Create a test client."""
    return app.test_client()


@pytest.fixture
def make_token():
    """Factory for signed CDS client JWTs. Pass claim=None to drop a claim."""
    def _make(aud, iss=TEST_ISSUER, exp_in=300, key=TEST_PRIVATE_KEY,
              algorithm='ES384', **extra):
        now = int(time.time())
        claims = {
            'iss': iss,
            'aud': aud,
            'exp': now + exp_in,
            'iat': now,
            'jti': f'jti-{now}-{aud}',
        }
        claims.update(extra)
        claims = {k: v for k, v in claims.items() if v is not None}
        return jwt.encode(claims, key, algorithm=algorithm,
                          headers={'kid': TEST_PUBLIC_JWK['kid']})
    return _make


@pytest.fixture
def auth_header(make_token):
    """Authorization header for a path on the test server."""
    def _header(path):
        return {'Authorization': f'Bearer {make_token(BASE_URL + path)}'}
    return _header


@pytest.fixture
def sample_patient():
    """FHIR R4 Patient resource."""
    return {
        'resourceType': 'Patient',
        'id': 'smart-1288992',
        'name': [{'use': 'official', 'family': 'Hanks', 'given': ['Tom', 'J']}],
        'gender': 'male',
        'birthDate': '1980-01-01',
    }


@pytest.fixture
def sample_medication_request():
    """Draft MedicationRequest for a non-aspirin medication."""
    return {
        'resourceType': 'MedicationRequest',
        'id': 'request-123',
        'status': 'draft',
        'intent': 'order',
        'subject': {'reference': 'Patient/smart-1288992'},
        'medicationCodeableConcept': {
            'text': 'Acetaminophen 325 MG Oral Tablet',
            'coding': [{
                'system': 'http://www.nlm.nih.gov/research/umls/rxnorm',
                'code': '11111',
                'display': 'Acetaminophen 325 MG Oral Tablet',
            }],
        },
    }


@pytest.fixture
def order_select_request(sample_medication_request):
    """order-select hook request with the draft order selected."""
    return {
        'hook': 'order-select',
        'hookInstance': 'd1577c69-dfbe-44ad-ba6d-3e05e953b2ea',
        'fhirServer': 'https://launch.smarthealthit.org/v/r2/fhir',
        'context': {
            'userId': 'Practitioner/example',
            'patientId': 'smart-1288992',
            'selections': ['MedicationRequest/request-123'],
            'draftOrders': {
                'resourceType': 'Bundle',
                'entry': [{'resource': sample_medication_request}],
            },
        },
    }


@pytest.fixture
def condition_bundle():
    """Search Bundle holding one hypertension Condition."""
    return {
        'resourceType': 'Bundle',
        'type': 'searchset',
        'total': 1,
        'entry': [{
            'resource': {
                'resourceType': 'Condition',
                'id': 'cond-1',
                'code': {
                    'coding': [{
                        'system': 'http://snomed.info/sct',
                        'code': '1201005',
                        'display': 'Benign essential hypertension',
                    }],
                    'text': 'Essential hypertension',
                },
                'subject': {'reference': 'Patient/smart-1288992'},
            }
        }],
    }
