'''
Rewrites an HTML document so that every resource it loads (links, images,
scripts, stylesheets, media, frames, form targets) goes through the proxy.
'''
from bs4 import BeautifulSoup, Comment

from rewrite_proxy.css_rewriter import CssRewriter
from rewrite_proxy.urls import UrlRewriter

# The one attribute per tag that names the resource the element loads
URL_ATTRS = {
    'a': 'href',
    'link': 'href',
    'form': 'action',
    'img': 'src',
    'script': 'src',
    'video': 'src',
    'audio': 'src',
    'iframe': 'src',
    'source': 'src',
}

SRCSET_TAGS = ('img', 'source')

# <link> elements the browser fetches on its own. Other rels (canonical,
# alternate, ...) are only metadata.
LINK_RELS = frozenset([
    'stylesheet',
    'icon',
    'apple-touch-icon',
    'preload',
    'modulepreload',
])


class HtmlRewriter(object):
    def __init__(self, url_rewriter):
        self.url_rewriter = url_rewriter
        self.css = CssRewriter(url_rewriter)

    def transform(self, html, target_url):
        soup = BeautifulSoup(html, 'lxml') # lenient, repairs broken markup instead of failing

        for tag in soup.find_all(True):
            if tag.name == 'style':
                self.style_fix(tag, target_url)
                continue

            attr = self.url_attr(tag)
            if attr:
                self.html_fix(tag, attr, target_url)
            if tag.name in SRCSET_TAGS:
                self.srcset_fix(tag, target_url)
            if tag.name == 'video':
                self.html_fix(tag, 'poster', target_url)
            if tag.has_attr('style'):
                tag['style'] = self.css.rewrite_inline(tag['style'], target_url)

        # A <base> would re-anchor anything resolved in the browser
        # (scripts building urls, anything we left alone) away from the proxy.
        for base in soup.find_all('base'):
            base.decompose()

        return str(soup)

    def url_attr(self, tag):
        attr = URL_ATTRS.get(tag.name)
        if tag.name == 'link':
            rels = [rel.lower() for rel in tag.get_attribute_list('rel') if rel]
            if not LINK_RELS.intersection(rels):
                return None
        return attr

    def html_fix(self, tag, attr, target_url):
        '''
        Replace tag[attr] with its proxied url. Empty, missing, data: and
        unresolvable values are left as they are.
        '''
        url = tag.get(attr)
        if not isinstance(url, str) or not url:
            return
        rv = self.url_rewriter.rewrite(url, target_url)
        if rv == url:
            return
        tag[attr] = rv
        if tag.name == 'form':
            tag['method'] = (tag.get('method') or 'GET').upper()

    def style_fix(self, tag, target_url):
        for text in tag.find_all(string=True):
            if isinstance(text, Comment):
                continue
            text.replace_with(type(text)(self.css.transform(str(text), target_url)))

    def srcset_fix(self, tag, target_url):
        srcset = tag.get('srcset')
        if isinstance(srcset, str) and srcset.strip():
            tag['srcset'] = self.url_rewriter.rewrite_srcset(srcset, target_url)


def transform(html, target_url, proxy_path='/proxy'):
    return HtmlRewriter(UrlRewriter(proxy_path)).transform(html, target_url)
