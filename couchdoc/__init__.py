"""Blocking document CRUD and view queries for CouchDB using Tornado's
httpclient."""

from .codec import EncodingError, decompose, inject, to_document
from .couch import (DEFAULT_HOST, DEFAULT_PORT, Database, PreconditionError,
                    Row, ViewResult, build_query, open_database)
from .transport import (BadRequest, Conflict, CouchException, DecodeError,
                        Forbidden, InternalServerError, MethodNotAllowed,
                        NotFound, NotModified, PreconditionFailed,
                        TransportError, Unauthorized, execute,
                        relax_exception)

__version__ = '0.4.0'
