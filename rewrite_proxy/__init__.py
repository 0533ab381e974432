from rewrite_proxy.config import ProxyConfig
from rewrite_proxy.proxy import make_app

__version__ = '0.2.0'

__all__ = ['ProxyConfig', 'make_app', '__version__']
