"""
Converging the generated objects with their desired state.

The generated objects are owned by the declared autoscaler (via a controller
owner reference), so that K8s garbage-collects them when the autoscaler
is deleted. This module only creates, replaces, or deletes them as needed.

Both functions are idempotent: when the cluster already has what is desired,
no mutating API calls are made at all.
"""
import copy
from collections.abc import Mapping
from typing import Any, cast

from cpa_operator._cogs.clients import creating, deleting, fetching, replacing
from cpa_operator._cogs.configs import configuration
from cpa_operator._cogs.helpers import typedefs
from cpa_operator._cogs.structs import autoscalers, bodies, references
from cpa_operator._core.actions import execution, manifests


async def reconcile_object(
        *,
        settings: configuration.OperatorSettings,
        owner: bodies.RawBody,
        resource: references.Resource,
        body: bodies.RawBody,
        should_provision: bool,
        updateable: bool,
        kind: str,
        logger: typedefs.Logger,
) -> execution.Result:
    """
    Bring one generated object to its desired state, if allowed.

    The object is created if it is absent, or replaced if it is present
    but differs from the desired body, and only if the provisioning
    is enabled (and the in-place updates are allowed, for replacements).
    Otherwise, the object is left untouched.

    The ``kind`` is a human-readable tag (e.g. ``"v1/Pod"``) for the logs only.
    """
    desired = copy.deepcopy(dict(body))
    bodies.append_owner_reference(desired, owner=owner)
    name: str = desired.get('metadata', {}).get('name', '')
    namespace = references.NamespaceName(desired.get('metadata', {}).get('namespace', ''))

    existing = await fetching.read_obj(
        settings=settings,
        resource=resource,
        namespace=namespace,
        name=name,
        logger=logger,
    )

    if existing is None:
        if not should_provision:
            logger.debug(f"{kind} {namespace}/{name} is absent, but its provisioning is disabled.")
            return execution.Result()
        logger.info(f"Creating {kind} {namespace}/{name}.")
        await creating.create_obj(
            settings=settings,
            resource=resource,
            body=cast(bodies.RawBody, desired),
            logger=logger,
        )
        return execution.Result()

    if not should_provision or not updateable:
        logger.debug(f"{kind} {namespace}/{name} exists and is not updated.")
        return execution.Result()

    if is_converged(desired, existing):
        logger.debug(f"{kind} {namespace}/{name} is up to date.")
        return execution.Result()

    # The optimistic concurrency: a concurrent change fails with HTTP 409 and is retried later.
    resource_version = existing.get('metadata', {}).get('resourceVersion')
    if resource_version:
        desired.setdefault('metadata', {})['resourceVersion'] = resource_version

    logger.info(f"Updating {kind} {namespace}/{name}.")
    await replacing.replace_obj(
        settings=settings,
        resource=resource,
        namespace=namespace,
        name=name,
        body=cast(bodies.RawBody, desired),
        logger=logger,
    )
    return execution.Result()


async def cleanup_pods(
        *,
        settings: configuration.OperatorSettings,
        autoscaler: autoscalers.CustomPodAutoscaler,
        logger: typedefs.Logger,
) -> None:
    """
    Delete the stale pods of the autoscaler: e.g. after its template is renamed.

    The pods are selected by the standard labels and then re-checked: only
    the pods owned by this very autoscaler are considered, and only those
    with a name other than the currently desired one are deleted.
    """
    template_meta = autoscaler.spec.template_meta
    desired_name = template_meta.get('name') or autoscaler.name
    namespace = references.NamespaceName(template_meta.get('namespace') or autoscaler.namespace)
    labels = manifests.build_labels(autoscaler.name)

    pods, _ = await fetching.list_objs(
        settings=settings,
        resource=references.PODS,
        namespace=namespace,
        label_selector=','.join(f'{key}={val}' for key, val in labels.items()),
        logger=logger,
    )

    for pod in pods:
        meta = pod.get('metadata', {})
        name = meta.get('name', '')
        if name == desired_name or not is_owned_by(pod, autoscaler):
            continue
        logger.info(f"Deleting the stale pod {namespace}/{name}.")
        await deleting.delete_obj(
            settings=settings,
            resource=references.PODS,
            namespace=namespace,
            name=name,
            logger=logger,
        )


def is_owned_by(body: bodies.RawBody, autoscaler: autoscalers.CustomPodAutoscaler) -> bool:
    meta = body.get('metadata', {})
    if meta.get('labels', {}).get(manifests.OWNED_BY_LABEL) != autoscaler.name:
        return False
    owner = bodies.get_controller_reference(body)
    if owner is not None and owner.get('uid') and autoscaler.uid:
        return owner.get('uid') == autoscaler.uid
    return True


def is_converged(desired: Any, existing: Any) -> bool:
    """
    Check if the desired state is already in the existing object.

    The dicts are compared as subsets: the existing object can have
    more fields (e.g. added by K8s itself), but not the different values.
    The lists are compared item by item, so the order matters.
    """
    if isinstance(desired, Mapping):
        return (isinstance(existing, Mapping) and
                all(key in existing and is_converged(val, existing[key])
                    for key, val in desired.items()))
    elif isinstance(desired, list):
        return (isinstance(existing, list) and
                len(desired) == len(existing) and
                all(is_converged(d, e) for d, e in zip(desired, existing)))
    else:
        return bool(desired == existing)
