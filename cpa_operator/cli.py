import asyncio
import dataclasses
import functools
from collections.abc import Callable, Collection
from typing import Any

import click

from cpa_operator._cogs.configs import configuration
from cpa_operator._cogs.helpers import versions
from cpa_operator._cogs.structs import references
from cpa_operator._core.actions import loggers
from cpa_operator._core.reactor import running


@dataclasses.dataclass()
class CLIControls:
    """ The controls of the embedded and testing runs, which cannot come via CLI. """
    stop_flag: asyncio.Future[None] | None = None
    settings: configuration.OperatorSettings | None = None


class LogFormatParamType(click.Choice):
    """ Log formats by their lowercase names, converted to `loggers.LogFormat`. """

    name = 'log-format'

    def __init__(self) -> None:
        super().__init__(choices=[fmt.name.lower() for fmt in loggers.LogFormat])

    def convert(self, value: Any, param: Any, ctx: Any) -> loggers.LogFormat:
        if isinstance(value, loggers.LogFormat):
            return value
        return loggers.LogFormat[str(super().convert(value, param, ctx)).upper()]


LOGGING_OPTIONS: list[Callable[[Callable[..., Any]], Callable[..., Any]]] = [
    click.option('-v', '--verbose', is_flag=True, help="Log the debug messages too."),
    click.option('-d', '--debug', is_flag=True, help="Log the debug messages of asyncio too."),
    click.option('-q', '--quiet', is_flag=True, help="Log only the warnings and errors."),
    click.option('--log-format', type=LogFormatParamType(), default='full'),
    click.option('--log-refkey', type=str, help="The JSON key for the object references."),
    click.option('--log-prefix/--no-log-prefix', default=None,
                 help="Prefix the messages with the object references."),
]
LOGGING_PARAMS = ('verbose', 'debug', 'quiet', 'log_format', 'log_refkey', 'log_prefix')


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ Add the logging options to a command, and configure the logging before it runs. """
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        loggers.configure(**{name: kwargs.pop(name) for name in LOGGING_PARAMS})
        return fn(*args, **kwargs)

    for option in reversed(LOGGING_OPTIONS):
        wrapper = option(wrapper)
    return wrapper


@click.version_option(version=versions.version or 'unknown', prog_name='cpa-operator')
@click.group(name='cpa-operator', context_settings=dict(
    auto_envvar_prefix='CPA_OPERATOR',
))
def main() -> None:
    pass


@main.command()
@logging_options
@click.option('-A', '--all-namespaces', 'clusterwide', is_flag=True,
              help="Serve the autoscalers in all namespaces.")
@click.option('-n', '--namespace', 'namespaces', multiple=True,
              help="Serve the autoscalers in this namespace (repeatable).")
@click.make_pass_decorator(CLIControls, ensure=True)
def run(
        __controls: CLIControls,
        namespaces: Collection[references.NamespaceName],
        clusterwide: bool,
) -> None:
    """ Start the operator and reconcile the custom pod autoscalers. """
    if namespaces and clusterwide:
        raise click.UsageError("Either --namespace or --all-namespaces can be used, not both.")
    running.run(
        namespaces=namespaces,
        clusterwide=clusterwide,
        settings=__controls.settings,
        stop_flag=__controls.stop_flag,
    )
