"""An in-process stand-in for a CouchDB server, used by the tests.

`FakeCouch` keeps databases in memory and implements the part of the CouchDB
HTTP API this package talks to: database create/delete/info, `_all_dbs`,
document GET/PUT/POST, conditional DELETE and canned view results. Revisions
are checked the way CouchDB checks them.
"""

import collections
import json
import threading
import uuid
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, unquote, urlsplit


Request = collections.namedtuple('Request', 'method path query headers body')

NOT_FOUND = {'error': 'not_found', 'reason': 'missing'}
NO_DB = {'error': 'not_found', 'reason': 'Database does not exist.'}
CONFLICT = {'error': 'conflict', 'reason': 'Document update conflict.'}


class _Handler(BaseHTTPRequestHandler):
    protocol_version = 'HTTP/1.1'

    def log_message(self, format, *args):
        return

    def _send(self, status, body, content_type='application/json'):
        self.send_response(status)
        self.send_header('Content-Type', content_type)
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _dispatch(self, method):
        length = int(self.headers.get('Content-Length') or 0)
        raw = self.rfile.read(length) if length else b''
        url = urlsplit(self.path)
        headers = dict((k.lower(), v) for k, v in self.headers.items())
        server = self.server
        server.requests.append(Request(method, url.path, url.query, headers,
                                       raw))
        canned = server.canned.get((method, url.path))
        if canned is not None:
            status, body = canned
            self._send(status, body)
            return
        parts = url.path.lstrip('/').split('/', 1)
        db = unquote(parts[0])
        rest = unquote(parts[1]) if len(parts) > 1 else ''
        with server.lock:
            status, obj = server.respond(method, db, rest, url.query,
                                         headers, raw)
        self._send(status, json.dumps(obj).encode('utf8'))

    def do_GET(self):
        self._dispatch('GET')

    def do_PUT(self):
        self._dispatch('PUT')

    def do_POST(self):
        self._dispatch('POST')

    def do_DELETE(self):
        self._dispatch('DELETE')


class FakeCouch(ThreadingHTTPServer):
    """Threaded HTTP server on a free local port behaving like CouchDB.

    `dbs` maps database names to `{doc_id: doc}`, `views` maps view paths to
    the JSON they return, and `canned` maps `(method, path)` to a raw
    `(status, body)` reply. Every request received is appended to
    `requests`.
    """

    daemon_threads = True

    def __init__(self):
        ThreadingHTTPServer.__init__(self, ('127.0.0.1', 0), _Handler)
        self.dbs = {}
        self.views = {}
        self.canned = {}
        self.requests = []
        self.lock = threading.Lock()
        self._thread = None

    @property
    def port(self):
        return self.server_address[1]

    def start(self):
        self._thread = threading.Thread(target=self.serve_forever,
                                        daemon=True)
        self._thread.start()

    def stop(self):
        self.shutdown()
        self.server_close()
        self._thread.join(timeout=1)

    def respond(self, method, db, rest, query, headers, raw):
        if db == '_all_dbs' and method == 'GET':
            return 200, sorted(self.dbs)
        if not rest:
            return self._handle_db(method, db, raw)
        if db not in self.dbs:
            return 404, NO_DB
        if rest == '_all_docs' or '/_view/' in rest:
            if rest in self.views:
                return 200, self.views[rest]
            return 404, {'error': 'not_found', 'reason': 'missing_named_view'}
        if method == 'GET':
            doc = self.dbs[db].get(rest)
            if doc is None:
                return 404, NOT_FOUND
            if doc.get('_deleted'):
                return 404, {'error': 'not_found', 'reason': 'deleted'}
            return 200, doc
        if method == 'PUT':
            doc = _parse(raw)
            if not isinstance(doc, dict):
                return 400, {'error': 'bad_request',
                             'reason': 'Document must be a JSON object'}
            return self._save(db, rest, doc)
        if method == 'DELETE':
            rev = (headers.get('if-match') or
                   parse_qs(query).get('rev', [None])[0])
            doc = self.dbs[db].get(rest)
            if doc is None or doc.get('_deleted'):
                return 404, NOT_FOUND
            if rev != doc['_rev']:
                return 409, CONFLICT
            new_rev = _next_rev(doc['_rev'])
            self.dbs[db][rest] = {'_id': rest, '_rev': new_rev,
                                  '_deleted': True}
            return 200, {'ok': True, 'id': rest, 'rev': new_rev}
        return 405, {'error': 'method_not_allowed',
                     'reason': 'Only GET,PUT,DELETE allowed'}

    def _handle_db(self, method, db, raw):
        if method == 'GET':
            if db not in self.dbs:
                return 404, NO_DB
            count = sum(1 for doc in self.dbs[db].values()
                        if not doc.get('_deleted'))
            return 200, {'db_name': db, 'doc_count': count}
        if method == 'PUT':
            if db in self.dbs:
                return 412, {'error': 'file_exists',
                             'reason': 'The database could not be created, '
                                       'the file already exists.'}
            self.dbs[db] = {}
            return 201, {'ok': True}
        if method == 'DELETE':
            if db not in self.dbs:
                return 404, NO_DB
            del self.dbs[db]
            return 200, {'ok': True}
        if method == 'POST':
            if db not in self.dbs:
                return 404, NO_DB
            doc = _parse(raw)
            if not isinstance(doc, dict):
                return 400, {'error': 'bad_request',
                             'reason': 'Document must be a JSON object'}
            return self._save(db, doc.get('_id') or uuid.uuid4().hex, doc)
        return 405, {'error': 'method_not_allowed',
                     'reason': 'Only DELETE,GET,HEAD,POST,PUT allowed'}

    def _save(self, db, doc_id, doc):
        stored = self.dbs[db].get(doc_id)
        rev = doc.get('_rev')
        if stored is not None and not stored.get('_deleted'):
            if rev != stored['_rev']:
                return 409, CONFLICT
        elif stored is None and rev:
            return 409, CONFLICT
        new_rev = _next_rev(stored['_rev'] if stored else None)
        doc = dict(doc)
        doc.update({'_id': doc_id, '_rev': new_rev})
        self.dbs[db][doc_id] = doc
        return 201, {'ok': True, 'id': doc_id, 'rev': new_rev}


def _parse(raw):
    try:
        return json.loads(raw.decode('utf8'))
    except ValueError:
        return None


def _next_rev(rev):
    n = int(rev.split('-', 1)[0]) + 1 if rev else 1
    return '{0}-{1}'.format(n, uuid.uuid4().hex)
