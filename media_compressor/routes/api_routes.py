"""API routes."""

from flask import Blueprint

from media_compressor.services import compression_service

api_bp = Blueprint("api", __name__, url_prefix="/api")

api_bp.add_url_rule(
    "/image/compress",
    endpoint="compress_image",
    view_func=compression_service.compress_image,
    methods=["POST"],
)
api_bp.add_url_rule(
    "/image/resize",
    endpoint="resize_image",
    view_func=compression_service.resize_image,
    methods=["POST"],
)
api_bp.add_url_rule(
    "/image/compress-batch",
    endpoint="compress_image_batch",
    view_func=compression_service.compress_image_batch,
    methods=["POST"],
)
api_bp.add_url_rule(
    "/image/check",
    endpoint="check_image_tool",
    view_func=compression_service.check_image_tool,
    methods=["GET"],
)
api_bp.add_url_rule(
    "/pdf/compress",
    endpoint="compress_pdf",
    view_func=compression_service.compress_pdf,
    methods=["POST"],
)
api_bp.add_url_rule(
    "/pdf/compress-batch",
    endpoint="compress_pdf_batch",
    view_func=compression_service.compress_pdf_batch,
    methods=["POST"],
)
api_bp.add_url_rule(
    "/pdf/check",
    endpoint="check_pdf_tool",
    view_func=compression_service.check_pdf_tool,
    methods=["GET"],
)
