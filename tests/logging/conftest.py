import logging

import pytest


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    asyncio_logger = logging.getLogger('asyncio')
    asyncio_handlers, asyncio_propagate = list(asyncio_logger.handlers), asyncio_logger.propagate
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    asyncio_logger.handlers[:] = asyncio_handlers
    asyncio_logger.propagate = asyncio_propagate


@pytest.fixture()
def k8s_ref():
    return {'apiVersion': 'custompodautoscaler.com/v1', 'kind': 'CustomPodAutoscaler',
            'name': 'cpa1', 'uid': 'uid1', 'namespace': 'ns1'}


@pytest.fixture()
def make_record():
    def fn(msg, *, level=logging.INFO, **extra):
        record = logging.LogRecord('cpa_operator.objects', level, __file__, 1, msg, (), None)
        for key, val in extra.items():
            setattr(record, key, val)
        return record
    return fn
