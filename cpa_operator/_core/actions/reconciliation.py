"""
The reconciliation of one declared autoscaler: the operator's control loop.

Each run starts from scratch: it reads the autoscaler by its identity,
and either does nothing (if it is gone or going), or scales the target
manually and removes the autoscaler (if it is paused), or converges
all the generated objects with their desired state.

The normal path is split into the pure planning, which validates the input
and builds the desired bodies before anything is changed in the cluster,
and the ordered pipeline of steps, each converging one generated object.
The first failed step aborts the pipeline, and the error goes to the caller
as is: the whole reconciliation is then retried from the beginning.

The collaborators (the object reconciler, the pod cleaner, the scale client)
are injectable: the defaults work via the operator's own API client.
"""
import copy
import dataclasses
import functools
import json
import logging
import re
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

from cpa_operator._cogs.clients import deleting, fetching, scaling
from cpa_operator._cogs.configs import configuration
from cpa_operator._cogs.helpers import typedefs
from cpa_operator._cogs.structs import autoscalers, bodies, references
from cpa_operator._core.actions import execution, loggers, manifests, provisioning

module_logger = logging.getLogger(__name__)

PAUSED_REPLICAS_ANNOTATION = 'v1.custompodautoscaler.com/paused-replicas'

INT32_MIN = -2 ** 31
INT32_MAX = 2 ** 31 - 1
_INTEGER_RE = re.compile(r'[+-]?[0-9]+')


class ObjectReconciler(Protocol):
    async def __call__(
            self,
            *,
            settings: configuration.OperatorSettings,
            owner: bodies.RawBody,
            resource: references.Resource,
            body: bodies.RawBody,
            should_provision: bool,
            updateable: bool,
            kind: str,
            logger: typedefs.Logger,
    ) -> execution.Result: ...


class PodCleaner(Protocol):
    async def __call__(
            self,
            *,
            settings: configuration.OperatorSettings,
            autoscaler: autoscalers.CustomPodAutoscaler,
            logger: typedefs.Logger,
    ) -> None: ...


class Scaler(Protocol):
    async def get(
            self,
            *,
            group: str,
            kind: str,
            name: str,
            namespace: references.NamespaceName,
            logger: typedefs.Logger,
    ) -> bodies.RawBody: ...

    async def update(
            self,
            *,
            group: str,
            kind: str,
            name: str,
            namespace: references.NamespaceName,
            scale: bodies.RawBody,
            logger: typedefs.Logger,
    ) -> bodies.RawBody: ...


@dataclasses.dataclass(frozen=True)
class Plan:
    """
    Everything the normal path needs, computed before any cluster mutation.

    The permission-related bodies are ``None`` when the service account
    is not provisioned by the operator but is taken from the pod template.
    """
    spec: autoscalers.AutoscalerSpec
    scale_target_ref: str
    labels: Mapping[str, str]
    service_account_name: str
    pod: bodies.RawBody
    service_account: bodies.RawBody | None = None
    role: bodies.RawBody | None = None
    role_binding: bodies.RawBody | None = None


@dataclasses.dataclass(frozen=True)
class Step:
    name: str
    fn: Callable[[], Awaitable[execution.Result | None]]


async def reconcile(
        identity: references.NamespacedName,
        *,
        settings: configuration.OperatorSettings,
        object_reconciler: ObjectReconciler = provisioning.reconcile_object,
        pod_cleaner: PodCleaner = provisioning.cleanup_pods,
        scaler: Scaler | None = None,
        logger: typedefs.Logger | None = None,
) -> execution.Result:
    """
    Reconcile one autoscaler by its identity.

    Returns the result of the pod's convergence (maybe with a requeue request).
    Raises `execution.ValidationError` for the invalid autoscalers,
    `execution.InvariantViolationError` for the impossible situations,
    and any API/network errors as they come from the API client.
    """
    body = await fetching.read_obj(
        settings=settings,
        resource=references.AUTOSCALERS,
        namespace=identity.namespace,
        name=identity.name,
        logger=logger if logger is not None else module_logger,
    )
    if body is None:
        # Already garbage-collected together with all its generated objects.
        return execution.Result()

    logger = logger if logger is not None else loggers.ObjectLogger(body=body)
    autoscaler = autoscalers.CustomPodAutoscaler.from_body(body)
    if autoscaler.deletion_timestamp is not None:
        logger.debug(f"Skipping: the autoscaler is being deleted since {autoscaler.deletion_timestamp}.")
        return execution.Result()

    if PAUSED_REPLICAS_ANNOTATION in autoscaler.annotations:
        await pause(
            autoscaler,
            settings=settings,
            scaler=scaler if scaler is not None else scaling.ScaleClient(settings=settings),
            logger=logger,
        )
        return execution.Result()

    plan = make_plan(autoscaler)
    steps = make_steps(
        autoscaler,
        plan=plan,
        settings=settings,
        object_reconciler=object_reconciler,
        pod_cleaner=pod_cleaner,
        logger=logger,
    )
    results = await run_steps(steps, logger=logger)
    return results.get('pod') or execution.Result()


def make_plan(autoscaler: autoscalers.CustomPodAutoscaler) -> Plan:
    """
    Build the desired state of all the generated objects of the autoscaler.

    Nothing is read from or written to the cluster here, so the validation
    errors are raised before any changes are made.
    """
    spec = autoscaler.spec.with_defaults()
    scale_target_ref = serialize_scale_target_ref(spec.scale_target_ref)
    labels = manifests.build_labels(autoscaler.name)

    service_account: bodies.RawBody | None = None
    role: bodies.RawBody | None = None
    role_binding: bodies.RawBody | None = None
    if spec.provision_service_account:
        service_account_name = autoscaler.name
        service_account = manifests.build_service_account(
            name=service_account_name,
            namespace=autoscaler.namespace,
            labels=labels,
        )
        role = manifests.build_role(
            name=autoscaler.name,
            namespace=autoscaler.namespace,
            labels=labels,
            metrics_server=bool(spec.role_requires_metrics_server),
            argo_rollouts=bool(spec.role_requires_argo_rollouts),
        )
        role_binding = manifests.build_role_binding(
            name=autoscaler.name,
            namespace=autoscaler.namespace,
            labels=labels,
            service_account_name=service_account_name,
            role_name=autoscaler.name,
        )
    else:
        service_account_name = spec.template_spec.get('serviceAccountName') or ''
        if not service_account_name:
            raise execution.ValidationError(
                "The service account provisioning is disabled, "
                "but no service account name is set in the pod template.")

    env = manifests.build_env(
        namespace=autoscaler.namespace,
        scale_target_ref=scale_target_ref,
        config=spec.config,
    )
    pod = manifests.build_pod(
        name=autoscaler.name,
        namespace=autoscaler.namespace,
        labels=labels,
        template=spec.template,
        env=env,
        service_account_name=service_account_name,
    )
    return Plan(
        spec=spec,
        scale_target_ref=scale_target_ref,
        labels=labels,
        service_account_name=service_account_name,
        service_account=service_account,
        role=role,
        role_binding=role_binding,
        pod=pod,
    )


def make_steps(
        autoscaler: autoscalers.CustomPodAutoscaler,
        *,
        plan: Plan,
        settings: configuration.OperatorSettings,
        object_reconciler: ObjectReconciler,
        pod_cleaner: PodCleaner,
        logger: typedefs.Logger,
) -> list[Step]:
    converge = functools.partial(
        object_reconciler,
        settings=settings,
        owner=autoscaler.raw,
        logger=logger,
    )

    steps: list[Step] = []
    if plan.service_account is not None:
        steps.append(Step('serviceaccount', functools.partial(
            converge, resource=references.SERVICEACCOUNTS, body=plan.service_account,
            should_provision=True, updateable=True, kind='v1/ServiceAccount')))
    if plan.role is not None:
        steps.append(Step('role', functools.partial(
            converge, resource=references.ROLES, body=plan.role,
            should_provision=bool(plan.spec.provision_role), updateable=True, kind='v1/Role')))
    if plan.role_binding is not None:
        steps.append(Step('rolebinding', functools.partial(
            converge, resource=references.ROLEBINDINGS, body=plan.role_binding,
            should_provision=bool(plan.spec.provision_role_binding), updateable=True,
            kind='v1/RoleBinding')))
    steps.append(Step('pod', functools.partial(
        converge, resource=references.PODS, body=plan.pod,
        should_provision=bool(plan.spec.provision_pod), updateable=False, kind='v1/Pod')))
    steps.append(Step('cleanup', functools.partial(
        pod_cleaner, settings=settings, autoscaler=autoscaler, logger=logger)))
    return steps


async def run_steps(
        steps: list[Step],
        *,
        logger: typedefs.Logger,
) -> dict[str, execution.Result]:
    """ Run the steps strictly in order; the first error aborts the rest. """
    results: dict[str, execution.Result] = {}
    for step in steps:
        logger.debug(f"Reconciling: {step.name}.")
        result = await step.fn()
        if result is not None:
            results[step.name] = result
    return results


async def pause(
        autoscaler: autoscalers.CustomPodAutoscaler,
        *,
        settings: configuration.OperatorSettings,
        scaler: Scaler,
        logger: typedefs.Logger,
) -> None:
    """
    Scale the target to the paused replicas manually, and remove the autoscaler.

    The autoscaler is deleted first, so that its pod (garbage-collected then)
    does not overwrite the manually set replicas. If anything fails after that,
    the next attempt starts from the beginning.
    """
    replicas = parse_replicas(autoscaler.annotations[PAUSED_REPLICAS_ANNOTATION])
    target = autoscaler.spec.scale_target_ref

    logger.info(f"Pausing: deleting the autoscaler and scaling {target.kind} {target.name!r} "
                f"to {replicas} replicas.")
    await deleting.delete_obj(
        settings=settings,
        resource=references.AUTOSCALERS,
        namespace=autoscaler.namespace,
        name=autoscaler.name,
        logger=logger,
    )

    try:
        group, _ = references.parse_api_version(target.api_version)
    except ValueError as e:
        raise execution.ValidationError(f"Invalid apiVersion of the scale target: {e}") from e

    scale = await scaler.get(
        group=group,
        kind=target.kind,
        name=target.name,
        namespace=autoscaler.namespace,
        logger=logger,
    )
    scale = copy.deepcopy(scale)
    scale.setdefault('spec', {})['replicas'] = replicas
    await scaler.update(
        group=group,
        kind=target.kind,
        name=target.name,
        namespace=autoscaler.namespace,
        scale=scale,
        logger=logger,
    )


def parse_replicas(value: str) -> int:
    """ Parse the paused replicas: a base-10 signed 32-bit integer, nothing else. """
    if not _INTEGER_RE.fullmatch(value):
        raise execution.ValidationError(f"Paused replicas must be an integer, got {value!r}.")
    replicas = int(value, 10)
    if not INT32_MIN <= replicas <= INT32_MAX:
        raise execution.ValidationError(f"Paused replicas are out of range: {value!r}.")
    return replicas


def serialize_scale_target_ref(ref: autoscalers.CrossVersionObjectReference) -> str:
    payload: Any = ref.as_dict()
    try:
        return json.dumps(payload, separators=(',', ':'), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise execution.InvariantViolationError(f"Cannot serialize the scale target: {e}") from e
