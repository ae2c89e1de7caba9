"""JSON envelope helpers for API responses."""
from flask import jsonify


def success(data, message=None, status=200):
    """{status: 'success', data, message?} with the given HTTP status."""
    body = {'status': 'success', 'data': data}
    if message:
        body['message'] = message
    return jsonify(body), status


def error(message, status=400, **payload):
    """{status: 'error', message, ...payload} with the given HTTP status."""
    body = dict(payload)
    body['status'] = 'error'
    body['message'] = message
    return jsonify(body), status
