import os
import logging
from flask import Flask, jsonify
from werkzeug.middleware.proxy_fix import ProxyFix
from cds.auth import get_verifier
from cds.cors import register_cors
from cds.routes import cds_blueprint

# Configure logging
logging.basicConfig(level=os.environ.get('LOG_LEVEL', 'DEBUG').upper(),
                   format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def trust_proxy(flask_app):
    """Take scheme and host from one upstream proxy's X-Forwarded-* headers."""
    flask_app.wsgi_app = ProxyFix(flask_app.wsgi_app, x_proto=1, x_host=1)
    return flask_app


# Create the Flask app
app = Flask(__name__)

# Token audiences are checked against the public https URL, not the proxied one
if os.environ.get('CDS_TRUST_PROXY') == '1':
    trust_proxy(app)

# CORS headers go on every response, including auth failures
register_cors(app)

app.register_blueprint(cds_blueprint)

# Build the token verifier once so a bad key or issuer list fails at startup
get_verifier()


@app.route('/health')
def health():
    return jsonify({'status': 'ok'})


if __name__ == "__main__":
    port = int(os.environ.get('PORT', 3000))
    logger.info(f"Starting CDS services on port {port}")
    app.run(host="0.0.0.0", port=port, debug=os.environ.get('FLASK_DEBUG') == '1')
