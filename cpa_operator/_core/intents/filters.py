"""
Filtering of the change notifications: which of them trigger a reconciliation.

The low-level watch-events only notify that an object was changed somehow:

* ``None`` for the objects as listed initially (they are "created" for us).
* ``ADDED`` for the newly created objects.
* ``MODIFIED`` for the changes of any field, be that metadata, spec, or status.
* ``DELETED`` for the actual deletion of the object post-factum.

All notifications about the declared autoscalers trigger their reconciliation.
For the generated objects, only their deletion does: so that the externally
removed objects are restored, while the operator's own writes to them
do not cause the endless loops of reconciliations.
"""
import enum
from collections.abc import Mapping

from cpa_operator._cogs.structs import bodies, references


class ObjectRole(str, enum.Enum):
    PRIMARY = 'primary'  # the declared autoscalers.
    SECONDARY = 'secondary'  # the generated objects owned by them.

    def __str__(self) -> str:
        return str(self.value)


class Notification(str, enum.Enum):
    CREATE = 'create'
    UPDATE = 'update'
    DELETE = 'delete'
    GENERIC = 'generic'

    def __str__(self) -> str:
        return str(self.value)


TRIGGERS: Mapping[tuple[ObjectRole, Notification], bool] = {
    (ObjectRole.PRIMARY, Notification.CREATE): True,
    (ObjectRole.PRIMARY, Notification.UPDATE): True,
    (ObjectRole.PRIMARY, Notification.DELETE): True,
    (ObjectRole.PRIMARY, Notification.GENERIC): False,
    (ObjectRole.SECONDARY, Notification.CREATE): False,
    (ObjectRole.SECONDARY, Notification.UPDATE): False,
    (ObjectRole.SECONDARY, Notification.DELETE): True,
    (ObjectRole.SECONDARY, Notification.GENERIC): False,
}


def classify(raw_type: str | None) -> Notification:
    if raw_type is None or raw_type == 'ADDED':
        return Notification.CREATE
    elif raw_type == 'MODIFIED':
        return Notification.UPDATE
    elif raw_type == 'DELETED':
        return Notification.DELETE
    else:
        return Notification.GENERIC


def triggers_reconciliation(role: ObjectRole, notification: Notification) -> bool:
    return TRIGGERS[role, notification]


def get_identity(role: ObjectRole, body: bodies.RawBody) -> references.NamespacedName | None:
    """
    Get the identity of the declared autoscaler to reconcile for an object.

    For the autoscalers, it is their own identity. For the generated objects,
    it is the identity of their controlling autoscaler, if any; the objects
    not controlled by an autoscaler are of no interest and give ``None``.
    """
    meta = body.get('metadata', {})
    namespace = references.NamespaceName(meta.get('namespace', ''))
    if role is ObjectRole.PRIMARY:
        return references.NamespacedName(namespace, meta.get('name', ''))

    owner = bodies.get_controller_reference(body)
    if owner is None or owner.get('kind') != references.AUTOSCALERS.kind:
        return None
    group, _ = references.parse_api_version(owner.get('apiVersion', ''))
    if group != references.AUTOSCALERS.group:
        return None
    return references.NamespacedName(namespace, owner.get('name', ''))
