"""
CORS headers for CDS services.

CDS Services must implement CORS in order to be called from a web browser
(e.g. the CDS Hooks sandbox). The allowed origin is fixed per deployment.
"""

import os

ALLOWED_ORIGIN = os.environ.get('CDS_ALLOWED_ORIGIN', 'https://sandbox.cds-hooks.org')

CORS_HEADERS = {
    'Access-Control-Allow-Origin': ALLOWED_ORIGIN,
    'Access-Control-Allow-Methods': 'GET, POST, OPTIONS',
    'Access-Control-Allow-Credentials': 'true',
    'Access-Control-Allow-Headers': 'Content-Type, Authorization',
    'Access-Control-Expose-Headers': 'Origin, Accept, Content-Location, Location, X-Requested-With',
}


def register_cors(app):
    """Add the CORS headers to every response, including 401s and 404s."""

    @app.after_request
    def add_cors_headers(response):
        for name, value in CORS_HEADERS.items():
            response.headers[name] = value
        return response
