# cores/exceptions.py
import logging

from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


def _first_message(detail):
    if isinstance(detail, list) and detail:
        return _first_message(detail[0])
    if isinstance(detail, dict) and detail:
        key, value = next(iter(detail.items()))
        message = _first_message(value)
        return message if key in ('detail', 'non_field_errors') else f"{key}: {message}"
    return str(detail)


def api_exception_handler(exc, context):
    """
    Wraps every DRF error as ``{"success": false, "error": ...}``.
    Validation errors keep the per-field breakdown under ``details``;
    extra attributes declared on the exception (e.g. ``redirect``) are passed through.
    """
    response = exception_handler(exc, context)
    if response is None:
        return None

    data = response.data
    payload = {"success": False, "error": _first_message(data)}
    if isinstance(data, dict) and set(data) - {'detail'}:
        payload["details"] = data
    elif isinstance(data, list):
        payload["details"] = data

    for field in getattr(exc, 'extra_fields', ()):
        payload[field] = getattr(exc, field)

    if response.status_code >= 500:
        logger.error("API error %s: %s", response.status_code, payload["error"])

    response.data = payload
    return response
