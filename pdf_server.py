# pdf_server.py: Flask backend that renders maintenance requests to PDF
import logging
import os
from datetime import datetime, timezone
from io import BytesIO

from flask import Flask, request, jsonify, send_file
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from werkzeug.utils import secure_filename

from records import RequestRecord
from report_pdf import ARABIC_FONT_AVAILABLE, render_detail_report, render_table_report

logger = logging.getLogger(__name__)

# ---------------------------
# Config
# ---------------------------
HOST = os.environ.get("PDF_SERVER_HOST", "0.0.0.0")
PORT = int(os.environ.get("PDF_SERVER_PORT", "5000"))
DEBUG = os.environ.get("PDF_SERVER_DEBUG", "false").lower() in ("true", "1", "yes")
MAX_CONTENT_LENGTH = int(os.environ.get("PDF_MAX_CONTENT_LENGTH", str(50 * 1024 * 1024)))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

GENERIC_PDF_ERROR = "Failed to generate PDF"

# ---------------------------
# App init
# ---------------------------
app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = MAX_CONTENT_LENGTH
CORS(app)


# ---------------------------
# Small helpers
# ---------------------------
def attachment_name(prefix: str, identifier) -> str:
    safe = secure_filename(str(identifier)) if identifier else ""
    return f"{prefix}_{safe or 'Unknown'}.pdf"


def pdf_response(pdf_bytes: bytes, filename: str):
    """Wrap fully rendered PDF bytes; headers are only set once rendering succeeded."""
    response = send_file(
        BytesIO(pdf_bytes),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=filename,
    )
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    return response


def json_body():
    """Parsed JSON object body; Flask rejects malformed or oversized bodies first."""
    payload = request.get_json()
    return payload if isinstance(payload, dict) else {}


@app.errorhandler(HTTPException)
def http_error(error):
    return jsonify({"error": error.description}), error.code


# ---------------------------
# API: single request PDF
# ---------------------------
@app.route("/generate-pdf", methods=["POST"])
def generate_pdf():
    data = json_body().get("request")
    if data is None:
        return jsonify({"error": "No request data provided"}), 400
    if not isinstance(data, dict):
        return jsonify({"error": "Request data must be a JSON object"}), 400

    record = RequestRecord(data)
    try:
        pdf_bytes = render_detail_report(data)
    except Exception:
        logger.exception("Error generating PDF for request %s", record.request_number)
        return jsonify({"error": GENERIC_PDF_ERROR}), 500

    logger.info("Generated detail PDF for request %s", record.request_number)
    return pdf_response(pdf_bytes, attachment_name("Request", data.get("Request Number")))


# ---------------------------
# API: table PDF
# ---------------------------
@app.route("/generate-table-pdf", methods=["POST"])
def generate_table_pdf():
    requests = json_body().get("requests")
    try:
        pdf_bytes = render_table_report(requests)
    except Exception:
        logger.exception("Error generating table PDF")
        return jsonify({"error": GENERIC_PDF_ERROR}), 500

    filename = f"Requests_{datetime.now(timezone.utc).date().isoformat()}.pdf"
    logger.info("Generated table PDF with %d request(s)", len(requests))
    return pdf_response(pdf_bytes, filename)


# ---------------------------
# API: health
# ---------------------------
@app.route("/health", methods=["GET"])
def health():
    return jsonify({
        "status": "ok",
        "message": "Server is running!",
        "arabicFont": "Available" if ARABIC_FONT_AVAILABLE else "Not available",
    })


# ---------------------------
# Run
# ---------------------------
if __name__ == "__main__":
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("PDF server listening on http://%s:%d (script font: %s)",
                HOST, PORT, "enabled" if ARABIC_FONT_AVAILABLE else "disabled")
    app.run(host=HOST, port=PORT, debug=DEBUG)
