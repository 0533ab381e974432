import pytest
from uritools import uridecode

from rewrite_proxy.urls import UrlRewriter, parse_srcset, resolve


@pytest.fixture
def rewriter():
    return UrlRewriter('/proxy')


def inner_url(proxied):
    prefix = '/proxy?url='
    assert proxied.startswith(prefix)
    return uridecode(proxied[len(prefix):])


@pytest.mark.parametrize('reference, base, expected', [
    ('/a.png', 'http://x.test/page', 'http://x.test/a.png'),
    ('a.png', 'http://x.test/dir/page', 'http://x.test/dir/a.png'),
    ('../img/bg.png', 'http://x.test/css/a.css', 'http://x.test/img/bg.png'),
    ('//cdn.test/lib.js', 'https://x.test/', 'https://cdn.test/lib.js'),
    ('http://other.test/p?q=1', 'https://x.test/', 'http://other.test/p?q=1'),
    ('?page=2', 'http://x.test/list?page=1', 'http://x.test/list?page=2'),
    ('#top', 'http://x.test/page', 'http://x.test/page#top'),
    ('  /a b.png\n', 'http://x.test/', 'http://x.test/a b.png'),
    ('/a\t.png', 'http://x.test/', 'http://x.test/a.png'),
])
def test_resolve(reference, base, expected):
    assert resolve(reference, base) == expected


@pytest.mark.parametrize('reference', [
    'http://[::1/x',
    'http://x.test:port/x',
    'http:///nohost',
])
def test_resolve_rejects_malformed(reference):
    with pytest.raises(ValueError):
        resolve(reference, 'http://x.test/')


def test_rewrite_scenario(rewriter):
    assert rewriter.rewrite('/a.png', 'http://x.test/page') == '/proxy?url=http%3A%2F%2Fx.test%2Fa.png'


@pytest.mark.parametrize('reference', [
    'a.png',
    '../up/b.css?v=3&x=y',
    '/path/with%20space',
    '//cdn.test/x.js',
    'café.html',
])
def test_rewrite_decodes_to_resolved(rewriter, reference, base):
    assert inner_url(rewriter.rewrite(reference, base)) == resolve(reference, base)


def test_rewrite_leaves_no_reserved_characters(rewriter, base):
    rv = rewriter.rewrite("/it's (a) file.png?a=1&b=2#f", base)
    query = rv.split('?url=', 1)[1]
    for char in "'()?&=#/: ":
        assert char not in query


@pytest.mark.parametrize('reference', [
    'data:image/png;base64,AAA',
    'DATA:text/plain,hi',
    '',
    '   ',
    'http://[::1/x',
])
def test_rewrite_leaves_inert_or_broken_references(rewriter, reference, base):
    assert rewriter.rewrite(reference, base) == reference


def test_rewrite_data_uri_for_any_base(rewriter):
    for base in ('http://x.test/', 'https://y.test/a/b/c', 'http://127.0.0.1:8080/'):
        assert rewriter.rewrite('data:image/png;base64,AAA', base) == 'data:image/png;base64,AAA'


def test_rewrite_uses_configured_path(base):
    assert UrlRewriter('/p').rewrite('/a', base).startswith('/p?url=')


@pytest.mark.parametrize('reference', [
    'http://cdn.test/bg.png',
    'HTTPS://cdn.test/bg.png',
    '//cdn.test/bg.png',
])
def test_rewrite_css_skips_absolute(rewriter, reference, base):
    assert rewriter.rewrite_css(reference, base) == reference


def test_rewrite_css_rewrites_relative(rewriter, base):
    assert rewriter.rewrite_css('bg.png', base) == rewriter.rewrite('bg.png', base)


def test_parse_srcset():
    assert parse_srcset('a.png 1x, b.png 2x') == [('a.png', '1x'), ('b.png', '2x')]
    assert parse_srcset('a.png, b.png 480w') == [('a.png', ''), ('b.png', '480w')]
    assert parse_srcset('data:image/png;base64,AAA 1x, b.png 2x') == [
        ('data:image/png;base64,AAA', '1x'),
        ('b.png', '2x'),
    ]
    assert parse_srcset(' , ') == []


def test_rewrite_srcset(rewriter):
    rv = rewriter.rewrite_srcset('a.png 1x, data:image/png;base64,AAA 2x,b.png', 'http://x.test/p/')
    assert rv == ('/proxy?url=http%3A%2F%2Fx.test%2Fp%2Fa.png 1x, '
                  'data:image/png;base64,AAA 2x, '
                  '/proxy?url=http%3A%2F%2Fx.test%2Fp%2Fb.png')
