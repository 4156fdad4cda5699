"""
Request input helpers shared by the route modules.
"""

from __future__ import annotations
from typing import Any, Dict
from flask import request
from steamfamily.utils.errors import ValidationError

REASON_INVALID_PAYLOAD = "invalid payload"


def request_payload() -> Dict[str, Any]:
    """
    The request body as a plain dict: a JSON object, or the form fields.

    Raises ValidationError for a JSON body that is malformed or is not an
    object (an array, string or number).
    """
    if not request.is_json:
        return request.form.to_dict()

    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError(REASON_INVALID_PAYLOAD, "Request body is not valid JSON.")
    if not isinstance(data, dict):
        raise ValidationError(REASON_INVALID_PAYLOAD, "Request body must be a JSON object.")
    return data
