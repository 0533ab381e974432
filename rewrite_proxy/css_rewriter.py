'''
Rewrites the url(...) references of a stylesheet so fonts, backgrounds and
imported sheets are fetched through the proxy.
'''
import re

from rewrite_proxy.urls import UrlRewriter

# url('path') or url("path") on one line, or url(path) with none of the
# characters an unquoted url may not hold
URL_FUNCTION = re.compile(
    r'''url\s*\(\s*(?:(?P<quote>['"])(?P<quoted>.*?)(?P=quote)|(?P<bare>[^'"()\s]*))\s*\)''',
    re.IGNORECASE)
# @import "path"; the url(...) form is covered by URL_FUNCTION
IMPORT_STRING = re.compile(r'''(@import\s+)(['"])(.*?)\2''', re.IGNORECASE)


class CssRewriter(object):
    def __init__(self, url_rewriter):
        self.url_rewriter = url_rewriter

    def transform(self, css, target_url):
        css = URL_FUNCTION.sub(lambda m: self._fix_url_function(m, target_url), css)
        return IMPORT_STRING.sub(lambda m: self._fix_import(m, target_url), css)

    def rewrite_inline(self, style, target_url):
        '''For the value of a style="" attribute.'''
        return URL_FUNCTION.sub(lambda m: self._fix_url_function(m, target_url), style)

    def _fix_url_function(self, match, target_url):
        quote = match.group('quote') or ''
        path = match.group('quoted') if quote else match.group('bare')
        rv = self.url_rewriter.rewrite_css(path, target_url)
        if rv == path: # absolute, data uri or unresolvable
            return match.group(0)
        return 'url(%s%s%s)' % (quote, rv, quote)

    def _fix_import(self, match, target_url):
        prefix, quote, path = match.groups()
        rv = self.url_rewriter.rewrite_css(path, target_url)
        if rv == path:
            return match.group(0)
        return '%s%s%s%s' % (prefix, quote, rv, quote)


def transform(css, target_url, proxy_path='/proxy'):
    return CssRewriter(UrlRewriter(proxy_path)).transform(css, target_url)
