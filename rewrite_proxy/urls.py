'''
Resolution of resource references and their re-encoding as proxied urls.

A proxied url always has the shape ``<proxy path>?url=<encoded absolute url>``
so every resource the browser asks for comes back through the proxy, which
then only has to decode one query argument to know where to go.
'''
import logging
import re

from uritools import uriencode, urijoin, urisplit

log = logging.getLogger(__name__)

NETWORK_SCHEMES = ('http', 'https')

# Browsers drop these anywhere inside a url attribute before parsing it.
_INVISIBLE = re.compile(r'[\t\n\r]')
_ABSOLUTE_CSS_REF = re.compile(r'(?:https?:|//)', re.IGNORECASE)


def is_data_uri(reference):
    return reference.lstrip()[:5].lower() == 'data:'


def check_host(parts):
    '''
    Return the host of a url split with urisplit. Raises ValueError when
    there is none, or it (or its port) is malformed.
    '''
    host = parts.gethost() # parses ip literals
    if host is None or host == '':
        raise ValueError('no host')
    if isinstance(host, str) and (':' in host or any(c.isspace() for c in host)):
        # a port that isn't all digits ends up in the host
        raise ValueError('malformed host or port %r' % parts.authority)
    return host


def resolve(reference, base):
    '''
    Resolve reference against base the way a browser would and return the
    absolute url. Raises ValueError when the result isn't a usable url.
    '''
    reference = _INVISIBLE.sub('', reference.strip())
    rv = urijoin(base, reference)
    parts = urisplit(rv)
    scheme = parts.getscheme()
    if not scheme:
        raise ValueError('%r does not resolve to an absolute url' % reference)
    if scheme in NETWORK_SCHEMES:
        check_host(parts)
    return rv


def parse_srcset(srcset):
    '''
    Split a srcset attribute into (url, descriptor) pairs.

    A candidate's url runs up to the first whitespace, so commas inside it
    (data: uris) are kept; a url directly followed by a comma has no
    descriptor. Descriptors run to the next comma outside parentheses.
    '''
    candidates = []
    position, length = 0, len(srcset)
    while True:
        while position < length and (srcset[position].isspace() or srcset[position] == ','):
            position += 1
        if position >= length:
            return candidates

        start = position
        while position < length and not srcset[position].isspace():
            position += 1
        url = srcset[start:position]

        if url.endswith(','):
            candidates.append((url.rstrip(','), ''))
            continue

        start, depth = position, 0
        while position < length:
            char = srcset[position]
            if char == '(':
                depth += 1
            elif char == ')' and depth:
                depth -= 1
            elif char == ',' and not depth:
                break
            position += 1
        candidates.append((url, srcset[start:position].strip()))
        position += 1


class UrlRewriter(object):
    def __init__(self, proxy_path='/proxy'):
        self.proxy_path = proxy_path

    def proxied(self, absolute_url):
        return '%s?url=%s' % (self.proxy_path, uriencode(absolute_url).decode('ascii'))

    def rewrite(self, reference, base):
        '''
        Return the proxied form of reference, or reference itself when it is
        empty, a data: uri, or can't be resolved against base.
        '''
        if not reference or not reference.strip(): # Null case
            return reference
        if is_data_uri(reference): # inline content, nothing to fetch
            return reference
        try:
            absolute = resolve(reference, base)
        except ValueError as e:
            log.debug('Leaving %r as is: %s', reference, e)
            return reference
        return self.proxied(absolute)

    def rewrite_css(self, reference, base):
        '''
        Same as rewrite, but stylesheet references the author already wrote
        with a scheme (or scheme-relative) are left alone.
        '''
        if _ABSOLUTE_CSS_REF.match(reference.lstrip()):
            return reference
        return self.rewrite(reference, base)

    def rewrite_srcset(self, srcset, base):
        rewritten = []
        for url, descriptor in parse_srcset(srcset):
            if not is_data_uri(url):
                url = self.rewrite(url, base)
            rewritten.append(('%s %s' % (url, descriptor)).strip())
        return ', '.join(rewritten)
