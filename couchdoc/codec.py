"""Conversion between caller records and CouchDB JSON documents.

A record is turned into a generic document by round-tripping it through the
JSON encoder, after which the reserved `_id` and `_rev` keys can be removed
or set by name, whatever the record's original type.
"""

import json
from collections.abc import Mapping

from tornado.escape import json_decode


__all__ = ["EncodingError", "json_encode", "to_document", "decompose",
           "inject", "split_revision"]

ID = '_id'
REV = '_rev'


class EncodingError(ValueError):
    """The record cannot be represented as a JSON key-value document."""


def _default(obj):
    if isinstance(obj, Mapping):
        return dict(obj)
    if hasattr(obj, '__json__'):
        return obj.__json__()
    raise TypeError('Object of type {0} is not JSON serializable'.format(
        type(obj).__name__))


def _prepare(record):
    # named tuples would otherwise be encoded as JSON arrays
    if isinstance(record, tuple) and hasattr(record, '_asdict'):
        return record._asdict()
    return record


def json_encode(value):
    """JSON-encodes the given Python object."""
    try:
        text = json.dumps(_prepare(value), allow_nan=False,
                          separators=(',', ':'), default=_default)
    except (TypeError, ValueError) as e:
        raise EncodingError(str(e)) from e
    return text.replace("</", "<\\/")


def to_document(record):
    """Return `record` as a generic document, a new `dict` in the record's
    field order.

    Raises `EncodingError` if the top level of the record is not a key-value
    mapping.
    """
    doc = json_decode(json_encode(record))
    if not isinstance(doc, dict):
        raise EncodingError('Record of type {0} is not a key-value '
                            'document'.format(type(record).__name__))
    return doc


def _pop_reserved(doc, key):
    value = doc.pop(key, None)
    if value is not None and not isinstance(value, str):
        raise EncodingError('Reserved key {0} must be a string, got '
                            '{1}'.format(key, type(value).__name__))
    return value or None


def decompose(record):
    """Split `record` into `(body, id, rev)`.

    The body is the document without its `_id` and `_rev` keys. Missing or
    empty identity and revision are returned as None.
    """
    body = to_document(record)
    doc_id = _pop_reserved(body, ID)
    rev = _pop_reserved(body, REV)
    return body, doc_id, rev


def inject(record, doc_id, rev):
    """Return `record` as a document with `_id` and `_rev` set, overwriting
    any values the record already holds under those keys."""
    body = to_document(record)
    body[ID] = doc_id
    body[REV] = rev
    return body


def split_revision(doc):
    """Remove the reserved keys from a decoded document in place and return
    `(doc, rev)`."""
    if not isinstance(doc, dict):
        raise EncodingError('Expected a JSON object, got {0}'.format(
            type(doc).__name__))
    doc.pop(ID, None)
    rev = _pop_reserved(doc, REV)
    return doc, rev
