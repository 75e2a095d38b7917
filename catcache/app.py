import html
import json
import os
import traceback

import cherrypy

from catcache.cache import CacheResolver, Origin
from catcache.errors import CacheError, InvalidKeyError, NotFoundError
from catcache.keys import filename_for, validate
from catcache.origin import DEFAULT_ORIGIN, OriginFetcher, make_fetcher
from catcache.storage import Storage, open_storage
from catcache.utils import say

DEFAULT_CORS_ORIGIN = '*'
KEY_METHODS = 'GET, PUT, DELETE, OPTIONS'


def _json(status, payload):
    """Encode a JSON response body and set status and content type."""
    cherrypy.response.status = status
    cherrypy.response.headers['Content-Type'] = 'application/json'
    return json.dumps(payload).encode('utf-8')


def _error(status, err):
    """JSON error body; only the error's stable message goes to the client."""
    message = err.message if isinstance(err, CacheError) else str(err)
    return _json(status, {'error': message})


def json_error_page(status, message, traceback, version):
    """Render CherryPy's own error responses as JSON without internals."""
    cherrypy.response.headers['Content-Type'] = 'application/json'
    reason = status.split(' ', 1)[-1].lower()
    return json.dumps({'error': reason})


class CacheAPI:
    def __init__(self, storage: Storage, fetcher: OriginFetcher, cors_origin=DEFAULT_CORS_ORIGIN):
        self.storage = storage
        self.resolver = CacheResolver(storage, fetcher)
        self.cors_origin = cors_origin

    @cherrypy.expose
    @cherrypy.tools.json_out()
    def health(self):
        """GET /health"""
        return {'status': 'ok'}

    @cherrypy.expose
    def default(self, *vpath, **params):
        """GET /, and GET/PUT/DELETE /<code>"""
        method = cherrypy.request.method

        # CORS preflight for any path
        if method == 'OPTIONS':
            cherrypy.response.status = 204
            return b''

        if not vpath:
            return self._index(method)

        if len(vpath) != 1:
            return _error(404, NotFoundError())

        try:
            key = validate(vpath[0])
        except InvalidKeyError as e:
            return _error(400, e)

        if method == 'GET':
            return self._get(key)
        if method == 'PUT':
            return self._put(key)
        if method == 'DELETE':
            return self._delete(key)

        cherrypy.response.headers['Allow'] = KEY_METHODS
        return _json(405, {'error': 'method not allowed'})

    def _get(self, key):
        try:
            data, origin = self.resolver.resolve(key)
        except NotFoundError as e:
            return _error(404, e)

        cherrypy.response.headers['Content-Type'] = 'image/jpeg'
        cherrypy.response.headers['X-Cache'] = 'HIT' if origin is Origin.CACHE else 'MISS'
        return data

    def _put(self, key):
        body = cherrypy.request.body.read()

        try:
            written = self.storage.put(key, body)
        except CacheError as e:
            say(f'PUT {key} failed: {type(e).__name__}: {str(e)}')
            traceback.print_exc()
            return _error(500, e)

        return _json(201, {'ok': True, 'saved': filename_for(key), 'bytes': written})

    def _delete(self, key):
        try:
            deleted = self.storage.delete(key)
        except NotFoundError as e:
            return _error(404, e)
        except CacheError as e:
            say(f'DELETE {key} failed: {type(e).__name__}: {str(e)}')
            traceback.print_exc()
            return _json(500, {'error': 'delete failed'})

        return _json(200, {'ok': True, 'deleted': deleted})

    def _index(self, method):
        if method != 'GET':
            cherrypy.response.headers['Allow'] = 'GET, OPTIONS'
            return _json(405, {'error': 'method not allowed'})

        names = self.storage.list()
        items = ''.join(f'<li>{html.escape(name)}</li>' for name in names)
        cherrypy.response.headers['Content-Type'] = 'text/html;charset=utf-8'
        return (
            '<!doctype html>\n'
            '<meta charset="utf-8">\n'
            '<title>Cache Index</title>\n'
            '<body style="font-family:system-ui,Segoe UI,Arial,sans-serif;line-height:1.4">\n'
            f'<h1>Cache ({len(names)})</h1>\n'
            '<p>Usage: <code>GET/PUT/DELETE /&lt;HTTP_CODE&gt;</code>, e.g. <code>/200</code>. '
            'Each file is stored as <code>&lt;code&gt;.jpg</code>.</p>\n'
            f'<ol>{items or "<em>empty</em>"}</ol>\n'
            '</body>'
        ).encode('utf-8')


def create_app(storage: Storage, fetcher: OriginFetcher, cors_origin=DEFAULT_CORS_ORIGIN):
    """Create and configure the CherryPy application"""
    api = CacheAPI(storage, fetcher, cors_origin=cors_origin)

    conf = {
        '/': {
            'tools.response_headers.on': True,
            'tools.response_headers.headers': [
                ('Access-Control-Allow-Origin', api.cors_origin),
                ('Access-Control-Allow-Methods', KEY_METHODS),
                ('Access-Control-Allow-Headers', 'Content-Type'),
            ],
            # No form parsing: PUT bodies are stored raw, whatever their content type
            'request.body.processors': {},
            'request.show_tracebacks': False,
            'error_page.default': json_error_page,
        }
    }

    return api, conf


def create_app_from_env(environ):
    """Build the application from CATCACHE_* environment variables."""
    location = environ.get('CATCACHE_CACHE')
    if not location:
        raise RuntimeError('CATCACHE_CACHE must name the cache directory')

    storage = open_storage(location)
    fetcher = make_fetcher(environ.get('CATCACHE_ORIGIN', DEFAULT_ORIGIN))
    return create_app(storage, fetcher, cors_origin=environ.get('CATCACHE_CORS_ORIGIN', DEFAULT_CORS_ORIGIN))


# "application" is the magic function called by uwsgi
def application(environ, start_response):
    if '' not in cherrypy.tree.apps:
        api, conf = create_app_from_env(os.environ)
        cherrypy.tree.mount(api, '/', conf)
        cherrypy.config.update({
            'log.screen': True,
            'environment': 'production',
            'tools.proxy.on': True,
        })
    return cherrypy.tree(environ, start_response)
