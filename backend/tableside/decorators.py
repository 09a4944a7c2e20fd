# Overview: Request decorators and response helpers for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import HTTP_STATUS_BY_CODE

ORG_HEADER = "X-Organization-Id"


def require_organization(f):
    """
    Establish tenant context for the request.

    Sets g.org_id from the X-Organization-Id header (or an organization_id
    query parameter). Tenant scoping is a flat filter; there is no
    authentication layer here.

    Returns 400 if no organization id is supplied.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        org_id = request.headers.get(ORG_HEADER) or request.args.get("organization_id")
        if not org_id or not org_id.strip():
            return jsonify({"success": False, "error": f"{ORG_HEADER} header required", "error_code": "validation_error"}), 400
        g.org_id = org_id.strip()
        return f(*args, **kwargs)

    return decorated_function


def result_response(result, success_status: int = 200):
    """Serialize a ServiceResult; failures map their error_code to an HTTP status."""
    if result.success:
        return jsonify(result.to_dict()), success_status
    return jsonify(result.to_dict()), HTTP_STATUS_BY_CODE.get(result.error_code, 500)
