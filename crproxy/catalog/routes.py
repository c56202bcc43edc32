"""JSON listing API for the registry landing page."""

from quart import Blueprint, current_app, jsonify

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/v1/images")


def _catalog():
    return current_app.config["CATALOG"]


@catalog_bp.route("/dockerhub", methods=["GET"])
async def dockerhub_repositories():
    return jsonify(await _catalog().fetch_dockerhub_repositories())


@catalog_bp.route("/dockerhub/<repo>/tags", methods=["GET"])
async def dockerhub_tags(repo: str):
    return jsonify(await _catalog().fetch_dockerhub_tags(repo))


@catalog_bp.route("/ghcr", methods=["GET"])
async def ghcr_packages():
    return jsonify(await _catalog().fetch_ghcr_packages())


@catalog_bp.route("/ghcr/<package>/versions", methods=["GET"])
async def ghcr_package_versions(package: str):
    return jsonify(await _catalog().fetch_ghcr_package_versions(package))
