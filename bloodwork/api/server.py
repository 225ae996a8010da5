# bloodwork/api/server.py

import argparse
import io
import os
import logging
from typing import Optional

from flask import Flask, request, jsonify, send_file
from flask_cors import CORS

from dotenv import load_dotenv
load_dotenv()

from bloodwork.constants import UPLOAD_FIELD, MAX_UPLOAD_MB
from bloodwork.ingestion.ingest_reports import ingest_pdf, stored_upload_name, text_preview
from bloodwork.ingestion.utils_pdf import DecodeError
from bloodwork.tools.extracts_store import ExtractStore, ExtractStoreError, row_records
from bloodwork.tools.spreadsheet import build_workbook, xlsx_filename, XLSX_MIMETYPE

logger = logging.getLogger(__name__)

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "./uploads")


def _is_pdf(upload) -> bool:
    if upload.mimetype == "application/pdf":
        return True
    return (upload.filename or "").lower().endswith(".pdf")


def create_app(store: Optional[ExtractStore] = None, upload_dir: Optional[str] = None) -> Flask:
    """
    Build the HTTP API around an extracts store.

    The store is owned by the caller; a default one (PROCESSED_DIR) is created
    only when none is passed.
    """
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = int(os.getenv("MAX_UPLOAD_MB", MAX_UPLOAD_MB)) * 1024 * 1024
    CORS(app)

    store = store or ExtractStore()
    upload_dir = upload_dir or UPLOAD_DIR
    os.makedirs(upload_dir, exist_ok=True)
    app.extensions["extracts_store"] = store

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({"error": "File too large"}), 413

    @app.route("/api/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok"}), 200

    @app.route("/api/upload", methods=["POST"])
    def upload():
        upload = request.files.get(UPLOAD_FIELD)
        if upload is None or not upload.filename:
            return jsonify({"error": "No PDF file uploaded"}), 400
        if not _is_pdf(upload):
            return jsonify({"error": "Only PDF files are allowed!"}), 400

        stored_name = stored_upload_name()
        file_path = os.path.join(upload_dir, stored_name)
        upload.save(file_path)
        try:
            with open(file_path, "rb") as f:
                data = f.read()
            res = ingest_pdf(store, data, stored_name, upload.filename)
        except DecodeError as e:
            logger.error(f"Error processing PDF {upload.filename}: {e}")
            return jsonify({"error": f"Failed to process PDF: {e}"}), 500
        except ExtractStoreError as e:
            logger.error(f"Database error: {e}")
            return jsonify({"error": "Failed to save to database"}), 500
        finally:
            # The upload is never kept once processed
            if os.path.exists(file_path):
                os.remove(file_path)

        return jsonify({
            "success": True,
            "message": "PDF processed successfully",
            "id": res["id"],
            "filename": upload.filename,
            "extractedText": text_preview(res["extracted_text"]),
            "rowCount": len(res["records"]),
        }), 200

    @app.route("/api/extracts", methods=["GET"])
    def list_extracts():
        try:
            return jsonify(store.list_extracts()), 200
        except ExtractStoreError as e:
            logger.error(f"Database error: {e}")
            return jsonify({"error": "Failed to fetch extracts"}), 500

    @app.route("/api/extracts/<int:extract_id>", methods=["GET"])
    def get_extract(extract_id: int):
        try:
            row = store.get(extract_id)
        except ExtractStoreError as e:
            logger.error(f"Database error: {e}")
            return jsonify({"error": "Failed to fetch extract"}), 500
        if row is None:
            return jsonify({"error": "Extract not found"}), 404
        return jsonify(row), 200

    @app.route("/api/database-info", methods=["GET"])
    def database_info():
        try:
            return jsonify(store.database_info()), 200
        except ExtractStoreError as e:
            logger.error(f"Database error: {e}")
            return jsonify({"error": "Failed to fetch database info"}), 500

    @app.route("/api/download/<int:extract_id>", methods=["GET"])
    def download(extract_id: int):
        try:
            row = store.get(extract_id)
        except ExtractStoreError as e:
            logger.error(f"Database error: {e}")
            return jsonify({"error": "Failed to fetch extract"}), 500
        if row is None:
            return jsonify({"error": "Extract not found"}), 404

        try:
            records = row_records(row)
            content = build_workbook(records, row.get("extracted_text"))
        except Exception as e:
            logger.error(f"Error generating Excel for extract {extract_id}: {e}")
            return jsonify({"error": "Failed to generate Excel file"}), 500

        return send_file(
            io.BytesIO(content),
            mimetype=XLSX_MIMETYPE,
            as_attachment=True,
            download_name=xlsx_filename(row.get("original_filename")),
        )

    @app.route("/api/extracts/<int:extract_id>", methods=["DELETE"])
    def delete_extract(extract_id: int):
        try:
            deleted = store.delete(extract_id)
        except ExtractStoreError as e:
            logger.error(f"Database error: {e}")
            return jsonify({"error": "Failed to delete extract"}), 500
        if not deleted:
            return jsonify({"error": "Extract not found"}), 404
        return jsonify({"success": True, "message": "Extract deleted successfully"}), 200

    return app


def main(argv=None):
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    parser = argparse.ArgumentParser(description="Blood report extraction API")
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "5000")))
    args = parser.parse_args(argv)

    app = create_app(ExtractStore())
    logger.info(f"API endpoints available at http://{args.host}:{args.port}/api")
    app.run(host=args.host, port=args.port)


if __name__ == "__main__":
    main()
