#! /usr/bin/env python
#
# Routes a webpage and every resource it pulls in through this proxy.
#
# Usage (URL Format): [ip address]:[port]/proxy?url=[percent-encoded url]
# e.g. localhost:3000/proxy?url=https%3A%2F%2Fwww.example.com%2Fpath

import datetime
import functools
import logging
import re
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor

import requests
from bs4 import UnicodeDammit
from tornado import gen, httputil, iostream, web
from tornado.ioloop import IOLoop
from uritools import urisplit
from urllib3.exceptions import ReadTimeoutError

from rewrite_proxy.config import ProxyConfig
from rewrite_proxy.css_rewriter import CssRewriter
from rewrite_proxy.errors import (
    ForbiddenScheme,
    InvalidURL,
    MissingParameter,
    ProxyError,
    StreamInterrupted,
    UpstreamTimeout,
    UpstreamUnavailable,
)
from rewrite_proxy.html_rewriter import HtmlRewriter
from rewrite_proxy.urls import NETWORK_SCHEMES, UrlRewriter, check_host

log = logging.getLogger(__name__)

# RFC 7230 6.1, meaningful for a single connection only
HOP_BY_HOP_HEADERS = frozenset([
    'connection',
    'keep-alive',
    'proxy-authenticate',
    'proxy-authorization',
    'te',
    'trailer',
    'transfer-encoding',
    'upgrade',
])

# Range and everything else the browser sent goes upstream untouched.
# accept-encoding is left to requests so the body is always something it
# can decode; referer would leak the proxy's own address.
DROPPED_REQUEST_HEADERS = HOP_BY_HOP_HEADERS | frozenset([
    'host',
    'content-length',
    'referer',
    'accept-encoding',
    'user-agent',
])

# The body we send is decoded and maybe rewritten, so its framing is ours.
DROPPED_RESPONSE_HEADERS = HOP_BY_HOP_HEADERS | frozenset([
    'content-encoding',
    'content-length',
    'access-control-allow-origin',
])

BODY_METHODS = ('POST', 'PUT', 'PATCH')
CORS_METHODS = ('GET', 'HEAD', 'PUT', 'PATCH', 'POST', 'DELETE')

_CHARSET = re.compile(r'''charset\s*=\s*["']?([\w.:-]+)''', re.IGNORECASE)

ProxyRequest = namedtuple('ProxyRequest', ['method', 'url', 'headers', 'body'])


def parse_target(url):
    '''
    Check the url argument of an inbound request and return it stripped.
    Raises MissingParameter, InvalidURL or ForbiddenScheme.
    '''
    url = (url or '').strip()
    if not url:
        raise MissingParameter('The url parameter is missing.')

    parts = urisplit(url)
    scheme = parts.getscheme()
    if not scheme:
        raise InvalidURL('Invalid url %r: not an absolute url.' % url)
    if scheme not in NETWORK_SCHEMES:
        raise ForbiddenScheme('Only http and https urls are allowed, got %s.' % scheme)
    try:
        check_host(parts)
    except ValueError as e:
        raise InvalidURL('Invalid url %r: %s.' % (url, e))
    return url


def forward_headers(headers, user_agent):
    rv = {}
    for name, value in headers.items():
        if name.lower() not in DROPPED_REQUEST_HEADERS:
            rv[name] = value
    rv['User-Agent'] = user_agent
    return rv


def upstream_headers(response):
    # urllib3 keeps repeated headers (Set-Cookie) apart, requests folds them
    raw_headers = getattr(response.raw, 'headers', None)
    if raw_headers is not None:
        return list(raw_headers.items())
    return list(response.headers.items())


def upstream_error(error, url):
    # requests reports a read timeout inside the body as a ConnectionError
    timed_out = isinstance(error, requests.Timeout) or (
        error.args and isinstance(error.args[0], ReadTimeoutError))
    if timed_out:
        return UpstreamTimeout('Timed out waiting for %s: %s' % (url, error))
    return UpstreamUnavailable('Failed to reach %s: %s' % (url, error))


def deadline_error(url, timeout):
    return UpstreamTimeout('Timed out waiting for %s after %gs' % (url, timeout))


def close_late_response(future):
    # a fetch that outlived its deadline, nobody reads its response
    if not future.cancelled() and future.exception() is None:
        future.result().close()


def within(timeout, future):
    '''
    Wait on a worker future for at most timeout (a timedelta, or a deadline
    in IOLoop time). Raises gen.TimeoutError; the worker carries on and
    whatever it ends with is dropped.
    '''
    return gen.with_timeout(timeout, future, quiet_exceptions=(Exception,))


def has_body(status_code):
    return not (100 <= status_code < 200 or status_code in (204, 304))


def decode_text(body, content_type, is_html):
    '''
    Decode a text body with the charset from its content-type, falling back
    to sniffing (meta tags, BOMs, statistics). Returns (text, encoding).
    '''
    match = _CHARSET.search(content_type)
    known = [match.group(1)] if match else []
    if not body:
        return '', (known or ['utf-8'])[0]
    dammit = UnicodeDammit(body, known, is_html=is_html)
    if dammit.unicode_markup is None:
        return body.decode('utf-8', 'replace'), 'utf-8'
    return dammit.unicode_markup, dammit.original_encoding or 'utf-8'


class CorsMixin(object):
    def set_default_headers(self):
        self.set_header('Access-Control-Allow-Origin', '*')


class ProxyHandler(CorsMixin, web.RequestHandler):
    SUPPORTED_METHODS = ('GET', 'HEAD', 'POST', 'PUT', 'PATCH', 'DELETE', 'OPTIONS')

    def initialize(self, config, executor):
        self.config = config
        self.executor = executor
        self.url_rewriter = UrlRewriter(config.proxy_path)
        self.html_rewriter = HtmlRewriter(self.url_rewriter)
        self.css_rewriter = CssRewriter(self.url_rewriter)
        self.upstream = None
        self.client_gone = False
        self.streaming = False # set once the first chunk has reached the client

    async def get(self):
        await self.proxy()

    head = post = put = patch = delete = get

    async def options(self):
        if self.request.headers.get('Access-Control-Request-Method'):
            self.preflight()
        else:
            await self.proxy()

    def preflight(self):
        self.set_status(204)
        self.set_header('Access-Control-Allow-Methods', ','.join(CORS_METHODS))
        requested = self.request.headers.get('Access-Control-Request-Headers')
        if requested:
            self.set_header('Access-Control-Allow-Headers', requested)
            self.add_header('Vary', 'Access-Control-Request-Headers')

    def build_request(self):
        target = parse_target(self.get_query_argument('url', None))
        method = self.request.method
        body = self.request.body if method in BODY_METHODS else None
        headers = forward_headers(self.request.headers, self.config.user_agent)
        return ProxyRequest(method, target, headers, body)

    async def proxy(self):
        request = self.build_request()
        log.info('%s %s', request.method, request.url)
        # Covers the fetch and, when it gets rewritten, the whole body.
        deadline = IOLoop.current().time() + self.config.timeout

        self.upstream = await self.fetch(request, deadline)
        response = self.upstream
        # Redirects were followed, so relative references in the body are
        # relative to wherever we ended up.
        base = response.url or request.url

        self.set_status(response.status_code, response.reason or None)
        self.relay_headers(response, base)

        content_type = response.headers.get('Content-Type', '')
        rewriter = self.rewriter_for(content_type)
        if not has_body(response.status_code):
            return
        if self.request.method == 'HEAD':
            if rewriter is None:
                self.declare_length(response)
            return

        if rewriter is None:
            self.declare_length(response)
            await self.stream(response, request.url)
        else:
            is_html = rewriter is self.html_rewriter
            body = await self.read(response, request.url, deadline)
            text, encoding = decode_text(body, content_type, is_html)
            text = rewriter.transform(text, base)
            errors = 'xmlcharrefreplace' if is_html else 'replace'
            self.set_header('Content-Type', '%s; charset=%s' % (content_type.split(';')[0].strip(), encoding))
            self.finish(text.encode(encoding, errors))

    def rewriter_for(self, content_type):
        content_type = content_type.lower()
        if 'text/html' in content_type:
            return self.html_rewriter
        if 'text/css' in content_type:
            return self.css_rewriter
        return None

    async def fetch(self, request, deadline):
        call = functools.partial(
            requests.request,
            request.method,
            request.url,
            headers=request.headers,
            data=request.body,
            timeout=self.config.timeout, # per socket operation, deadline bounds the total
            stream=True,
            allow_redirects=True,
        )
        future = IOLoop.current().run_in_executor(self.executor, call)
        try:
            return await within(deadline, future)
        except gen.TimeoutError:
            future.add_done_callback(close_late_response)
            log.error('%s %s timed out', request.method, request.url)
            raise deadline_error(request.url, self.config.timeout)
        except Exception as e:
            log.error('%s %s failed: %s', request.method, request.url, e)
            raise upstream_error(e, request.url)

    def relay_headers(self, response, base):
        self.clear_header('Content-Type')
        seen = set()
        for name, value in upstream_headers(response):
            lname = name.lower()
            if lname in DROPPED_RESPONSE_HEADERS:
                continue
            if lname == 'location':
                value = self.url_rewriter.rewrite(value, base)
            if lname in seen:
                self.add_header(name, value)
            else:
                self.set_header(name, value)
                seen.add(lname)

    def declare_length(self, response):
        '''
        An unencoded upstream body is relayed byte for byte, so its length
        still holds. Media players need it for seeking.
        '''
        length = response.headers.get('Content-Length', '').strip()
        encoding = response.headers.get('Content-Encoding', '').strip().lower()
        if length.isdigit() and encoding in ('', 'identity'):
            self.set_header('Content-Length', length)

    async def read(self, response, url, deadline):
        '''
        Read the whole upstream body. Past the deadline the handler answers
        504 and on_finish closes the response under the still-reading worker.
        '''
        future = IOLoop.current().run_in_executor(self.executor, lambda: response.content)
        try:
            return await within(deadline, future)
        except gen.TimeoutError:
            log.error('Reading %s timed out', url)
            raise deadline_error(url, self.config.timeout)
        except requests.RequestException as e:
            log.error('Reading %s failed: %s', url, e)
            raise upstream_error(e, url)

    async def stream(self, response, url):
        chunks = response.iter_content(self.config.chunk_size)
        loop = IOLoop.current()
        # A media stream may run for as long as it likes, one chunk may not.
        wait = datetime.timedelta(seconds=self.config.timeout)
        while not self.client_gone:
            future = loop.run_in_executor(self.executor, next, chunks, None)
            try:
                chunk = await within(wait, future)
            except gen.TimeoutError:
                self.interrupted(deadline_error(url, self.config.timeout), url)
            except requests.RequestException as e:
                self.interrupted(StreamInterrupted('Connection to %s broke mid-stream: %s' % (url, e)), url)
            if chunk is None:
                return
            if not chunk:
                continue
            self.write(chunk)
            try:
                await self.flush()
            except iostream.StreamClosedError:
                self.client_gone = True
            self.streaming = True
        log.debug('Client disconnected, dropping %s', url)

    def interrupted(self, error, url):
        log.error('Stream from %s broke: %s', url, error.message)
        if self.streaming:
            # Headers are out, so no error response is possible. Closing
            # shows the client the body is incomplete.
            self.request.connection.close()
        raise error

    def write_error(self, status_code, **kwargs):
        error = kwargs.get('exc_info', (None, None, None))[1]
        if isinstance(error, ProxyError):
            message = error.message
        else:
            message = httputil.responses.get(status_code, 'Unknown')
        self.finish({'error': message})

    def on_connection_close(self):
        self.client_gone = True

    def on_finish(self):
        if self.upstream is not None:
            self.upstream.close()
            self.upstream = None


class StaticHandler(CorsMixin, web.StaticFileHandler):
    pass


def make_app(config=None, **settings):
    config = config or ProxyConfig()
    # One thread per upstream call in flight, apart from the loop's own executor
    executor = ThreadPoolExecutor(config.workers, thread_name_prefix='upstream')
    return web.Application([
        (re.escape(config.proxy_path), ProxyHandler, {'config': config, 'executor': executor}),
        (r'/(.*)', StaticHandler, {'path': config.static_path, 'default_filename': 'index.html'}),
    ], **settings)
