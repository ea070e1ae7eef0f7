"""Single request/response transactions against CouchDB.

Every call to `execute` opens its own connection through a new blocking
`tornado.httpclient.HTTPClient`, which is closed again before returning.
Nothing is pooled, cached or retried.
"""

import logging
from urllib.parse import unquote, urlsplit, urlunsplit

from tornado import httpclient, httputil
from tornado.escape import json_decode


__all__ = ["execute", "TransportError", "DecodeError", "CouchException",
           "NotModified", "BadRequest", "Unauthorized", "Forbidden",
           "NotFound", "MethodNotAllowed", "Conflict", "PreconditionFailed",
           "InternalServerError", "relax_exception"]

log = logging.getLogger(__name__)


class TransportError(Exception):
    """CouchDB could not be reached, or its reply could not be read."""


class DecodeError(TransportError):
    """The response body is not the expected JSON."""


class CouchException(httpclient.HTTPError):
    """Base class for errors reported by CouchDB itself.

    `error` and `reason` hold the fields of the error envelope returned by
    the server, if it sent one. The message has the form "error: reason".
    """

    description = 'The request to CouchDB failed.'

    def __init__(self, code, error=None, reason=None, response=None):
        self.error = error
        self.reason = reason
        if error:
            message = '{0}: {1}'.format(error, reason or '')
        else:
            message = reason or self.description
        httpclient.HTTPError.__init__(self, code, message, response)


class NotModified(CouchException):
    """HTTP Error 304 (Not Modified)"""

    description = 'The document has not been modified since the last update.'


class BadRequest(CouchException):
    """HTTP Error 400 (Bad Request)"""

    description = ('The syntax of the request was invalid or could not be '
                   'processed.')


class Unauthorized(CouchException):
    """HTTP Error 401 (Unauthorized)"""

    description = 'The supplied credentials were missing or not accepted.'


class Forbidden(CouchException):
    """HTTP Error 403 (Forbidden)"""

    description = 'The request was refused by the database.'


class NotFound(CouchException):
    """HTTP Error 404 (Not Found)"""

    description = 'The requested resource was not found.'


class MethodNotAllowed(CouchException):
    """HTTP Error 405 (Method Not Allowed)"""

    description = ('The request was made using an incorrect request method; '
                   'for example, a GET was used where a POST was required.')


class Conflict(CouchException):
    """HTTP Error 409 (Conflict)"""

    description = 'The request failed because of a database conflict.'


class PreconditionFailed(CouchException):
    """HTTP Error 412 (Precondition Failed)"""

    description = ('Could not create database - a database with that name '
                   'already exists.')


class InternalServerError(CouchException):
    """HTTP Error 500 (Internal Server Error)"""

    description = ('The request was invalid and failed, or an error occurred '
                   'within the CouchDB server that prevented it from '
                   'processing the request.')


_EXCEPTIONS = {
    304: NotModified,
    400: BadRequest,
    401: Unauthorized,
    403: Forbidden,
    404: NotFound,
    405: MethodNotAllowed,
    409: Conflict,
    412: PreconditionFailed,
    500: InternalServerError,
}


def relax_exception(code, envelope=None, response=None):
    """Build the Couch specific exception for status `code`, taking error
    and reason from the decoded `envelope` when it carries them."""
    error = reason = None
    if isinstance(envelope, dict):
        error = envelope.get('error')
        reason = envelope.get('reason')
    if not error and not reason and response is not None:
        reason = response.reason
    cls = _EXCEPTIONS.get(code, CouchException)
    return cls(code, error, reason, response)


def _split_credentials(url):
    # returns the url without user-info, plus the decoded credentials
    parts = urlsplit(url)
    if parts.username is None:
        return url, None, None
    netloc = parts.netloc.rpartition('@')[2]
    return (urlunsplit(parts._replace(netloc=netloc)),
            unquote(parts.username), unquote(parts.password or ''))


def execute(method, url, headers=None, body=None, into=None):
    """Make one HTTP request and return `(status, decoded_body)`.

    The `headers` mapping is copied, never modified. A non-empty `body` is
    sent as JSON. Credentials embedded in `url` are sent with basic
    authentication. If `into` is given, it is called with the decoded JSON
    and its result returned in place of the plain value.

    A status outside 200-299 raises a `CouchException` subclass, after the
    error envelope in the body has been decoded. Connection failures raise
    `TransportError` and unreadable bodies `DecodeError`.
    """
    url, username, password = _split_credentials(url)
    request_headers = httputil.HTTPHeaders()
    if headers:
        request_headers.update(headers)
    if 'Accept' not in request_headers:
        request_headers['Accept'] = 'application/json'
    if body:
        if 'Content-Type' not in request_headers:
            request_headers['Content-Type'] = 'application/json'
    elif method in ('POST', 'PUT'):
        body = ''
    else:
        body = None

    auth = {}
    if username is not None:
        auth = {'auth_username': username, 'auth_password': password,
                'auth_mode': 'basic'}
    req = httpclient.HTTPRequest(url, method=method, headers=request_headers,
                                 body=body, **auth)

    client = httpclient.HTTPClient()
    try:
        resp = client.fetch(req)
    except httpclient.HTTPError as e:
        if e.response is None:
            log.debug('%s %s failed: %s', method, url, e)
            raise TransportError('{0} {1} failed: {2}'.format(
                method, url, e)) from e
        resp = e.response
    except OSError as e:
        log.debug('%s %s failed: %s', method, url, e)
        raise TransportError('{0} {1} failed: {2}'.format(
            method, url, e)) from e
    finally:
        client.close()

    log.debug('%s %s %d', method, url, resp.code)
    success = 200 <= resp.code < 300
    try:
        obj = json_decode(resp.body)
    except ValueError as e:
        if success:
            raise DecodeError('Malformed JSON in response to {0} {1}'.format(
                method, url)) from e
        obj = None

    if not success:
        log.debug('  body: %r', resp.body)
        raise relax_exception(resp.code, obj, resp)

    if into is None:
        return resp.code, obj
    try:
        return resp.code, into(obj)
    except (AttributeError, TypeError, ValueError, KeyError) as e:
        raise DecodeError('Cannot convert response to {0} {1}: {2}'.format(
            method, url, e)) from e
