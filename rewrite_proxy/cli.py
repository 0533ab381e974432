import logging

import click
from tornado import ioloop
from tornado.log import LogFormatter

from rewrite_proxy.config import DEFAULT_USER_AGENT, ProxyConfig
from rewrite_proxy.proxy import make_app

context_settings = {
    'help_option_names': ['-h', '--help'],
    'auto_envvar_prefix': 'REWRITE_PROXY',
}

LOG_LEVELS = [logging.WARNING, logging.INFO, logging.DEBUG]


def configure_logging(verbosity):
    handler = logging.StreamHandler()
    handler.setFormatter(LogFormatter())
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(LOG_LEVELS[min(verbosity, len(LOG_LEVELS) - 1)])


@click.command(context_settings=context_settings)
@click.option('-p', '--port', type=int, default=3000,
              help='The port to serve the proxy on. Defaults to 3000')
@click.option('-a', '--address', default='0.0.0.0',
              help='The address to bind to. Defaults to 0.0.0.0')
@click.option('--proxy-path', default='/proxy',
              help='Path of the proxy endpoint and prefix of rewritten urls. Defaults to /proxy')
@click.option('-t', '--timeout', type=click.FloatRange(min=0, min_open=True), default=15.0,
              help='Seconds to wait on the upstream site. Defaults to 15')
@click.option('--user-agent', default=DEFAULT_USER_AGENT,
              help='User-Agent sent to upstream sites.')
@click.option('-w', '--workers', type=click.IntRange(min=1), default=64,
              help='Upstream requests handled at once. Defaults to 64')
@click.option('-v', '--verbose', 'verbosity', count=True,
              help='Increases the verbosity of the logging.')
def cli(port, address, proxy_path, timeout, user_agent, workers, verbosity):
    configure_logging(verbosity)
    config = ProxyConfig(proxy_path=proxy_path, timeout=timeout,
                         user_agent=user_agent, workers=workers)
    app = make_app(config)
    app.listen(port, address=address)
    click.echo('Proxy listening on http://%s:%d/ (Ctrl + C to stop)' % (address, port))
    ioloop.IOLoop.current().start()

if __name__ == "__main__":
    cli()

main = cli
