"""
Request gate for CDS Hooks services.

CDS Services should only allow calls from trusted CDS Clients. The client
signs a JWT and sends it as `Authorization: Bearer <jwt>`. We check:
- Signature against a configured public key (JWK), ES384 or RS384 only
- Issuer is in the allow-list
- Audience is exactly the URL the client called (scheme, host, path)
- exp / iat, with a clock skew tolerance (default 5 minutes)

Failures are answered with an empty 401 and a challenge header:
  WWW-Authenticate: Bearer realm="<host>", error="invalid_token", error_description="..."

Configuration:
  CDS_PUBLIC_JWK       JSON Web Key used to verify tokens (default: CDS Hooks sandbox key)
  CDS_ALLOWED_ISSUERS  Comma separated issuer allow-list
  CDS_CLOCK_TOLERANCE  Allowed clock skew in seconds
  CDS_OPEN_DISCOVERY   Set to 1 to serve GET /cds-services without a token
  CDS_TRUST_PROXY      Set to 1 behind a TLS-terminating proxy so the audience
                       is built from X-Forwarded-Proto / X-Forwarded-Host
"""

import json
import logging
import os

import jwt
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from flask import request, Response

logger = logging.getLogger(__name__)

DEFAULT_ALGORITHMS = ('ES384', 'RS384')
DEFAULT_ISSUERS = ('https://sandbox.cds-hooks.org',)
DEFAULT_CLOCK_TOLERANCE = 5 * 60

# Public key the CDS Hooks sandbox signs its requests with
SANDBOX_PUBLIC_JWK = {
    'kty': 'EC',
    'use': 'sig',
    'crv': 'P-384',
    'kid': '44823f3d-0b01-4a6c-a80e-b9d3e8a7226f',
    'x': 'dw_JGR8nB2I6XveNxUOl2qk699ZPLM2nYI5STSdiEl9avAkrm3CkfYMbrrjr8laB',
    'y': 'Sm3mLE-n1zYNla_aiE3cb3nZsL51RbC7ysw3q8aJLxGm-hx79RPMYpITDjp7kgzy',
    'alg': 'ES384',
}

MISSING_TOKEN = 'missing_token'
INVALID_TOKEN = 'invalid_token'


class AuthError(Exception):
    """A request failed the gate. `error` is the code sent in the challenge."""

    def __init__(self, error, description):
        super().__init__(description)
        self.error = error
        self.description = description

    def challenge(self, realm):
        return (f'Bearer realm="{realm}", error="{self.error}", '
                f'error_description="{self.description}"')


class TokenVerifier:
    """
    Verifies CDS client JWTs against one public key.

    Built once at startup and shared across requests; holds no per-request
    state.
    """

    def __init__(self, public_jwk, issuers=DEFAULT_ISSUERS,
                 algorithms=DEFAULT_ALGORITHMS,
                 leeway=DEFAULT_CLOCK_TOLERANCE):
        self.key = jwt.PyJWK(public_jwk).key
        self.kid = public_jwk.get('kid')
        self.issuers = list(issuers)
        self.leeway = leeway
        # Only offer algorithms this key can actually verify, so a token
        # claiming RS384 against an EC key is rejected by PyJWT itself
        if isinstance(self.key, (ec.EllipticCurvePublicKey, ec.EllipticCurvePrivateKey)):
            family = 'ES'
        elif isinstance(self.key, (rsa.RSAPublicKey, rsa.RSAPrivateKey)):
            family = 'RS'
        else:
            raise ValueError(f'Unsupported key type for token verification: {type(self.key).__name__}')
        self.algorithms = [alg for alg in algorithms if alg.startswith(family)]
        if not self.algorithms:
            raise ValueError(f'None of {list(algorithms)} can be used with a {family} key')

    @classmethod
    def from_env(cls):
        raw_jwk = os.environ.get('CDS_PUBLIC_JWK', '').strip()
        public_jwk = json.loads(raw_jwk) if raw_jwk else SANDBOX_PUBLIC_JWK
        raw_issuers = os.environ.get('CDS_ALLOWED_ISSUERS', '')
        issuers = [i.strip() for i in raw_issuers.split(',') if i.strip()] or DEFAULT_ISSUERS
        leeway = int(os.environ.get('CDS_CLOCK_TOLERANCE', DEFAULT_CLOCK_TOLERANCE))
        return cls(public_jwk, issuers=issuers, leeway=leeway)

    def verify(self, token, audience):
        """
        Decode and verify a token for the given audience.

        Returns:
            dict: The verified claims

        Raises:
            AuthError: invalid_token for any verification failure
        """
        try:
            claims = jwt.decode(
                token,
                self.key,
                algorithms=self.algorithms,
                audience=audience,
                issuer=self.issuers,
                leeway=self.leeway,
                options={'require': ['iss', 'aud', 'exp']},
            )
        except jwt.PyJWTError as e:
            logger.info(f'invalid_token: {type(e).__name__}: {e} (aud={audience})')
            raise AuthError(INVALID_TOKEN, 'The token is invalid.') from e

        logger.debug(f'Verified token claims: {json.dumps(claims, indent=2, default=str)}')
        return claims


def authorize_request(method, url, authorization, verifier):
    """
    Decide whether a request may proceed.

    Args:
        method: HTTP method of the request
        url: Audience the token must name (scheme, host and path the client called)
        authorization: Value of the Authorization header, or None
        verifier: TokenVerifier to check the token with

    Returns:
        dict or None: Verified claims, None for CORS pre-flight

    Raises:
        AuthError: missing_token or invalid_token
    """
    # Always allow OPTIONS requests as part of CORS pre-flight support
    if method == 'OPTIONS':
        return None

    if not authorization or not authorization.startswith('Bearer '):
        raise AuthError(MISSING_TOKEN, 'No Bearer token provided.')
    token = authorization[len('Bearer '):].strip()
    if not token:
        raise AuthError(MISSING_TOKEN, 'No Bearer token provided.')

    return verifier.verify(token, url)


# --- Verifier singleton ---

_verifier_instance: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    """Return the shared verifier, building it from the environment once."""
    global _verifier_instance
    if _verifier_instance is None:
        _verifier_instance = TokenVerifier.from_env()
        logger.info(f'Token verifier initialized: kid={_verifier_instance.kid} '
                    f'issuers={_verifier_instance.issuers} algorithms={_verifier_instance.algorithms}')
    return _verifier_instance


def set_verifier(verifier: TokenVerifier):
    """Install a specific verifier (tests, embedding applications)."""
    global _verifier_instance
    _verifier_instance = verifier


def reset_verifier():
    """Drop the shared verifier so the next call rebuilds it from the environment."""
    global _verifier_instance
    _verifier_instance = None


def is_discovery_open() -> bool:
    return os.environ.get('CDS_OPEN_DISCOVERY', '').strip().lower() in ('1', 'true', 'yes')


def register_request_gate(blueprint, discovery_endpoint=None):
    """
    Register token checking as a before_request hook on the blueprint.

    Args:
        blueprint: Flask blueprint serving the CDS services
        discovery_endpoint: Endpoint name of the discovery route, exempted
            when CDS_OPEN_DISCOVERY is set
    """

    @blueprint.before_request
    def enforce_bearer_token():
        if (discovery_endpoint and request.endpoint == discovery_endpoint
                and request.method == 'GET' and is_discovery_open()):
            return None

        try:
            authorize_request(
                request.method,
                request.base_url,
                request.headers.get('Authorization'),
                get_verifier(),
            )
        except AuthError as e:
            logger.info(f'Rejected {request.method} {request.path}: {e.error}')
            response = Response(status=401)
            response.headers['WWW-Authenticate'] = e.challenge(request.host)
            return response
        return None
