import functools

import pytest

from cpa_operator._cogs.structs.references import NamespacedName
from cpa_operator._core.actions.reconciliation import reconcile


@pytest.fixture()
def identity():
    return NamespacedName('ns1', 'cpa1')


@pytest.fixture()
def declare(cluster, autoscaler_body):
    """ Store the autoscaler in the fake cluster, maybe with some extra spec fields. """
    def fn(**spec):
        autoscaler_body['spec'].update(spec)
        return cluster.put('custompodautoscalers', autoscaler_body)
    return fn


@pytest.fixture()
def run(identity, settings, scaler, logger):
    return functools.partial(reconcile, identity, settings=settings, scaler=scaler, logger=logger)
