import logging
from unittest import mock

import pytest
from click.testing import CliRunner

from rewrite_proxy import cli as cli_module
from rewrite_proxy.config import DEFAULT_USER_AGENT, ProxyConfig


@pytest.fixture
def server():
    with mock.patch.object(cli_module, 'make_app') as make_app, \
            mock.patch.object(cli_module.ioloop.IOLoop, 'current') as current, \
            mock.patch.object(cli_module, 'configure_logging') as configure_logging:
        yield make_app, current, configure_logging


def test_defaults(server):
    make_app, current, configure_logging = server
    result = CliRunner().invoke(cli_module.cli, [])
    assert result.exit_code == 0, result.output
    config = make_app.call_args[0][0]
    assert config == ProxyConfig()
    assert config.user_agent == DEFAULT_USER_AGENT
    make_app.return_value.listen.assert_called_once_with(3000, address='0.0.0.0')
    current.return_value.start.assert_called_once_with()
    configure_logging.assert_called_once_with(0)
    assert 'http://0.0.0.0:3000/' in result.output


def test_options(server):
    make_app, current, configure_logging = server
    result = CliRunner().invoke(cli_module.cli, [
        '-p', '8080', '-a', '127.0.0.1', '--proxy-path', '/p', '-t', '5',
        '--user-agent', 'agent/1', '-w', '8', '-vv',
    ])
    assert result.exit_code == 0, result.output
    config = make_app.call_args[0][0]
    assert config.proxy_path == '/p'
    assert config.timeout == 5.0
    assert config.user_agent == 'agent/1'
    assert config.workers == 8
    make_app.return_value.listen.assert_called_once_with(8080, address='127.0.0.1')
    configure_logging.assert_called_once_with(2)


def test_environment(server):
    make_app, current, configure_logging = server
    result = CliRunner().invoke(cli_module.cli, [], env={'REWRITE_PROXY_PORT': '9000'})
    assert result.exit_code == 0, result.output
    make_app.return_value.listen.assert_called_once_with(9000, address='0.0.0.0')


def test_rejects_non_positive_timeout(server):
    result = CliRunner().invoke(cli_module.cli, ['-t', '0'])
    assert result.exit_code != 0
    assert not server[0].called


def test_configure_logging_levels():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    try:
        cli_module.configure_logging(1)
        assert root.level == logging.INFO
        cli_module.configure_logging(5)
        assert root.level == logging.DEBUG
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)


def test_config_validation():
    assert ProxyConfig(proxy_path='p').proxy_path == '/p'
    with pytest.raises(ValueError):
        ProxyConfig(timeout=0)
    with pytest.raises(ValueError):
        ProxyConfig(chunk_size=0)
    with pytest.raises(ValueError):
        ProxyConfig(workers=0)


def test_rejects_zero_workers(server):
    result = CliRunner().invoke(cli_module.cli, ['-w', '0'])
    assert result.exit_code != 0
    assert not server[0].called
