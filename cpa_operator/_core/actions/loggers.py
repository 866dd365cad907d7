"""
Per-autoscaler logging: the adapter, the formatters, the root configuration.

The messages logged while reconciling an autoscaler carry its reference
(``k8s_ref``) in the record. The text formats show it as a ``[namespace/name]``
prefix; the JSON format puts it into a separate field for the log collectors.
"""
import copy
import enum
import logging
from collections.abc import Mapping, MutableMapping
from typing import Any

from pythonjsonlogger import core as jsoncore
from pythonjsonlogger import json as jsonlogger

from cpa_operator._cogs.helpers import typedefs
from cpa_operator._cogs.structs import bodies

DEFAULT_JSON_REFKEY = 'object'

# The lowest matching threshold wins; above all of them is "fatal".
SEVERITIES: tuple[tuple[int, str], ...] = (
    (logging.DEBUG, 'debug'),
    (logging.INFO, 'info'),
    (logging.WARNING, 'warn'),
    (logging.ERROR, 'error'),
)


class LogFormat(enum.Enum):
    """ Log formats, as specified on CLI. """
    PLAIN = '%(message)s'
    FULL = '[%(asctime)s] %(name)-20.20s [%(levelname)-8.8s] %(message)s'
    JSON = enum.auto()


def make_ref(body: bodies.RawBody) -> dict[str, Any]:
    """ An object reference in the K8s manner, as put into the log records. """
    meta = body.get('metadata', {})
    return dict(
        apiVersion=body.get('apiVersion'),
        kind=body.get('kind'),
        name=meta.get('name'),
        uid=meta.get('uid'),
        namespace=meta.get('namespace'),
    )


def get_severity(levelno: int) -> str:
    for threshold, severity in SEVERITIES:
        if levelno <= threshold:
            return severity
    return 'fatal'


class ObjectFormatter(logging.Formatter):
    pass


class ObjectTextFormatter(ObjectFormatter):
    pass


class ObjectJsonFormatter(ObjectFormatter, jsonlogger.JsonFormatter):
    """
    JSON lines with the object reference under a configurable key.

    The raw ``k8s_ref`` attribute is not dumped as an extra field:
    it goes under the ref-key only (``object`` by default).
    """

    def __init__(self, *args: Any, refkey: str | None = None, **kwargs: Any) -> None:
        reserved = set(kwargs.pop('reserved_attrs', jsoncore.RESERVED_ATTRS)) | {'k8s_ref'}
        kwargs.setdefault('timestamp', True)
        super().__init__(*args, reserved_attrs=reserved, **kwargs)
        self._refkey: str = refkey or DEFAULT_JSON_REFKEY

    def add_fields(
            self,
            log_data: MutableMapping[str, Any],
            record: logging.LogRecord,
            message_dict: Mapping[str, Any],
    ) -> None:
        super().add_fields(log_data, record, message_dict)
        ref = getattr(record, 'k8s_ref', None)
        if ref is not None:
            log_data[self._refkey] = ref
        log_data.setdefault('severity', get_severity(record.levelno))


class ObjectPrefixingMixin(ObjectFormatter):
    def format(self, record: logging.LogRecord) -> str:
        ref = getattr(record, 'k8s_ref', None)
        if ref is not None:
            namespace, name = ref.get('namespace'), ref.get('name')
            record = copy.copy(record)  # the other handlers must see the original message.
            record.msg = f"[{namespace}/{name}] {record.msg}" if namespace else f"[{name}] {record.msg}"
        return super().format(record)


class ObjectPrefixingTextFormatter(ObjectPrefixingMixin, ObjectTextFormatter):
    pass


class ObjectPrefixingJsonFormatter(ObjectPrefixingMixin, ObjectJsonFormatter):
    pass


class ObjectLogger(typedefs.LoggerAdapter):
    """
    A logger of one autoscaler's reconciliation.

    The per-call extras are merged with the autoscaler's reference,
    not replaced by it (as the stdlib adapters do).
    """

    def __init__(self, *, body: bodies.RawBody) -> None:
        super().__init__(logger, dict(k8s_ref=make_ref(body)))

    def process(
            self,
            msg: str,
            kwargs: MutableMapping[str, Any],
    ) -> tuple[str, MutableMapping[str, Any]]:
        kwargs["extra"] = dict(self.extra or {}, **kwargs.get('extra', {}))
        return msg, kwargs


logger = logging.getLogger('cpa_operator.objects')


def configure(
        debug: bool | None = None,
        verbose: bool | None = None,
        quiet: bool | None = None,
        log_format: LogFormat = LogFormat.FULL,
        log_prefix: bool | None = False,
        log_refkey: str | None = None,
) -> None:
    """ Configure the root logger for the operator's process (not for the embedded use). """
    handler = logging.StreamHandler()
    handler.setFormatter(make_formatter(log_format=log_format, log_prefix=log_prefix,
                                        log_refkey=log_refkey))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug or verbose else logging.WARNING if quiet else logging.INFO)

    # The event loop's own messages are noise unless debugging.
    asyncio_logger = logging.getLogger('asyncio')
    asyncio_logger.propagate = bool(debug)
    if not debug:
        asyncio_logger.handlers[:] = [logging.NullHandler()]


def make_formatter(
        log_format: LogFormat | str = LogFormat.FULL,
        log_prefix: bool | None = False,
        log_refkey: str | None = None,
) -> ObjectFormatter:
    """
    Pick a formatter for the format. Custom %-style strings are accepted too.

    The prefixes are on for the text formats and off for JSON, unless set explicitly.
    """
    if log_prefix is None:
        log_prefix = log_format is not LogFormat.JSON
    match log_format:
        case LogFormat.JSON:
            cls: type[ObjectFormatter]
            cls = ObjectPrefixingJsonFormatter if log_prefix else ObjectJsonFormatter
            return cls(refkey=log_refkey)  # type: ignore[call-arg]
        case LogFormat() | str():
            fmt = log_format.value if isinstance(log_format, LogFormat) else log_format
            cls = ObjectPrefixingTextFormatter if log_prefix else ObjectTextFormatter
            return cls(fmt)
        case _:
            raise ValueError(f"Unsupported log format: {log_format!r}")
