import pytest
from click.testing import CliRunner

from cpa_operator.cli import CLIControls, main


@pytest.fixture()
def invoke():
    runner = CliRunner()
    return lambda *args, **kwargs: runner.invoke(main, list(args), **kwargs)


@pytest.fixture(autouse=True)
def configure(mocker):
    return mocker.patch('cpa_operator._core.actions.loggers.configure')


@pytest.fixture(autouse=True)
def run(mocker):
    return mocker.patch('cpa_operator._core.reactor.running.run')


def test_help(invoke):
    result = invoke('--help')
    assert result.exit_code == 0
    assert 'run' in result.output


def test_version(invoke):
    result = invoke('--version')
    assert result.exit_code == 0
    assert 'cpa-operator' in result.output


def test_namespaces(invoke, run):
    result = invoke('run', '-n', 'ns1', '--namespace', 'ns2')
    assert result.exit_code == 0, result.output
    assert run.call_args.kwargs['namespaces'] == ('ns1', 'ns2')
    assert run.call_args.kwargs['clusterwide'] is False


def test_all_namespaces(invoke, run):
    result = invoke('run', '-A')
    assert result.exit_code == 0, result.output
    assert run.call_args.kwargs['namespaces'] == ()
    assert run.call_args.kwargs['clusterwide'] is True


def test_namespaces_from_env(invoke, run):
    result = invoke('run', env={'CPA_OPERATOR_RUN_NAMESPACES': 'ns1 ns2'})
    assert result.exit_code == 0, result.output
    assert run.call_args.kwargs['namespaces'] == ('ns1', 'ns2')


def test_namespaces_conflict_with_all_namespaces(invoke, run):
    result = invoke('run', '-A', '-n', 'ns1')
    assert result.exit_code == 2
    assert 'not both' in result.output
    assert not run.called


@pytest.mark.parametrize('args, kwargs', [
    ([], dict(debug=False, verbose=False, quiet=False, log_prefix=None, log_refkey=None)),
    (['--debug'], dict(debug=True)),
    (['-v'], dict(verbose=True)),
    (['-q'], dict(quiet=True)),
    (['--log-prefix'], dict(log_prefix=True)),
    (['--no-log-prefix'], dict(log_prefix=False)),
    (['--log-refkey', 'k8s'], dict(log_refkey='k8s')),
])
def test_logging_options(invoke, configure, args, kwargs):
    result = invoke('run', '-A', *args)
    assert result.exit_code == 0, result.output
    for key, val in kwargs.items():
        assert configure.call_args.kwargs[key] == val


@pytest.mark.parametrize('value, name', [('plain', 'PLAIN'), ('full', 'FULL'), ('json', 'JSON')])
def test_log_format(invoke, configure, value, name):
    result = invoke('run', '-A', '--log-format', value)
    assert result.exit_code == 0, result.output
    assert configure.call_args.kwargs['log_format'].name == name


def test_unknown_log_format(invoke, run):
    result = invoke('run', '-A', '--log-format', 'xml')
    assert result.exit_code == 2
    assert not run.called


def test_controls_are_passed_through(invoke, run, settings):
    controls = CLIControls(settings=settings)
    result = invoke('run', '-A', obj=controls)
    assert result.exit_code == 0, result.output
    assert run.call_args.kwargs['settings'] is settings
