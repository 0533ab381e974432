import os
from collections import namedtuple

STATIC_PATH = os.path.join(os.path.dirname(__file__), 'static')

# Sent upstream in place of the client's own User-Agent. Some sites refuse
# or degrade requests that don't look like they came from a desktop browser.
DEFAULT_USER_AGENT = ('Mozilla/5.0 (Windows NT 10.0; Win64; x64) '
                      'AppleWebKit/537.36 (KHTML, like Gecko) '
                      'Chrome/120.0.0.0 Safari/537.36')

_ProxyConfig = namedtuple('ProxyConfig', [
    'proxy_path',
    'timeout',
    'user_agent',
    'chunk_size',
    'static_path',
    'workers',
])


class ProxyConfig(_ProxyConfig):
    '''
    Read-only settings shared by every handler for the life of the process.

    proxy_path  -- path the proxy endpoint is mounted on, and the prefix of
                   every rewritten url (e.g. /proxy?url=...)
    timeout     -- seconds allowed for the upstream response, up to its full
                   body when that gets rewritten, and for each streamed chunk
    user_agent  -- User-Agent sent upstream
    chunk_size  -- bytes read from upstream per streamed chunk
    static_path -- directory holding the landing page
    workers     -- threads running blocking upstream calls, the most upstream
                   requests in flight at once
    '''
    __slots__ = ()

    def __new__(cls, proxy_path='/proxy', timeout=15.0,
                user_agent=DEFAULT_USER_AGENT, chunk_size=64 * 1024,
                static_path=STATIC_PATH, workers=64):
        if not proxy_path.startswith('/'):
            proxy_path = '/' + proxy_path
        if timeout <= 0:
            raise ValueError('timeout must be positive, got %r' % timeout)
        if chunk_size <= 0:
            raise ValueError('chunk_size must be positive, got %r' % chunk_size)
        if workers <= 0:
            raise ValueError('workers must be positive, got %r' % workers)
        return super(ProxyConfig, cls).__new__(
            cls, proxy_path, float(timeout), user_agent, chunk_size, static_path,
            workers)
