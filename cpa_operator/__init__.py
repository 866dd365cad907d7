"""
The Custom Pod Autoscaler operator: the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the operator's top-level interface,
# as it is seen by the embedding code and the tests. So, we export the individual names.

from cpa_operator._cogs.configs.configuration import (
    OperatorSettings,
)
from cpa_operator._cogs.helpers.typedefs import (
    Logger,
)
from cpa_operator._cogs.helpers.versions import (
    version as __version__,
)
from cpa_operator._cogs.structs.autoscalers import (
    CustomPodAutoscaler,
    AutoscalerSpec,
    CrossVersionObjectReference,
    ConfigItem,
)
from cpa_operator._cogs.structs.bodies import (
    RawBody,
    RawEvent,
    OwnerReference,
    build_owner_reference,
)
from cpa_operator._cogs.structs.credentials import (
    LoginError,
    ConnectionInfo,
)
from cpa_operator._cogs.structs.references import (
    NamespacedName,
    Resource,
)
from cpa_operator._core.actions.execution import (
    Result,
    PermanentError,
    TemporaryError,
    ValidationError,
    InvariantViolationError,
)
from cpa_operator._core.actions.loggers import (
    LogFormat,
    ObjectLogger,
    configure,
)
from cpa_operator._core.actions.reconciliation import (
    reconcile,
)
from cpa_operator._core.intents.filters import (
    ObjectRole,
    Notification,
)
from cpa_operator._core.reactor.running import (
    run,
    operator,
)

__all__ = [
    'OperatorSettings',
    'Logger',
    'CustomPodAutoscaler',
    'AutoscalerSpec',
    'CrossVersionObjectReference',
    'ConfigItem',
    'RawBody',
    'RawEvent',
    'OwnerReference',
    'build_owner_reference',
    'LoginError',
    'ConnectionInfo',
    'NamespacedName',
    'Resource',
    'Result',
    'PermanentError',
    'TemporaryError',
    'ValidationError',
    'InvariantViolationError',
    'LogFormat',
    'ObjectLogger',
    'configure',
    'reconcile',
    'ObjectRole',
    'Notification',
    'run',
    'operator',
]
