from __future__ import annotations

from flask import Blueprint, jsonify, request

from yellowjersey.services import store_catalog_service as catalog
from yellowjersey.services.errors import ServiceError
from yellowjersey.utils.auth import current_user

store_bp = Blueprint("store_bp", __name__, url_prefix="/api/store")


def _store_user():
    try:
        return catalog.require_store(current_user()), None
    except ServiceError as e:
        if e.status == 401:
            return None, (jsonify({"ok": False, "error": "Unauthorized"}), 401)
        return None, (jsonify(e.to_payload()), e.status)


@store_bp.get("/categories")
def list_categories():
    u, err = _store_user()
    if err:
        return err
    return jsonify({"ok": True, "categories": catalog.list_categories(u)}), 200


@store_bp.post("/categories")
def create_category():
    u, err = _store_user()
    if err:
        return err
    try:
        row = catalog.create_category(u, request.get_json(silent=True) or {})
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify({"ok": True, "category": row.to_dict()}), 201


@store_bp.put("/categories")
def update_category():
    u, err = _store_user()
    if err:
        return err
    try:
        row = catalog.update_category(u, request.get_json(silent=True) or {})
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify({"ok": True, "category": row.to_dict()}), 200


@store_bp.delete("/categories")
def delete_category():
    u, err = _store_user()
    if err:
        return err
    try:
        catalog.delete_category(u, request.args.get("id"))
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify({"ok": True}), 200


@store_bp.get("/services")
def list_services():
    u, err = _store_user()
    if err:
        return err
    return jsonify({"ok": True, "services": catalog.list_services(u)}), 200


@store_bp.post("/services")
def create_service():
    u, err = _store_user()
    if err:
        return err
    try:
        row = catalog.create_service(u, request.get_json(silent=True) or {})
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify({"ok": True, "service": row.to_dict()}), 201


@store_bp.put("/services")
def update_service():
    u, err = _store_user()
    if err:
        return err
    try:
        row = catalog.update_service(u, request.get_json(silent=True) or {})
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify({"ok": True, "service": row.to_dict()}), 200


@store_bp.delete("/services")
def delete_service():
    u, err = _store_user()
    if err:
        return err
    try:
        catalog.delete_service(u, request.args.get("id"))
    except ServiceError as e:
        return jsonify(e.to_payload()), e.status
    return jsonify({"ok": True}), 200
