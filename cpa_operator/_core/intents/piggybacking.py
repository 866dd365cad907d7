"""
The logins to the K8s API: from inside the cluster, or via kubeconfig files.

Only the static credentials are supported: tokens, client certificates,
usernames & passwords. The auth-provider plugins and the exec-credentials
are not executed; only an already issued access-token is taken from them.
"""
import os
from typing import Any

import yaml

from cpa_operator._cogs.helpers import typedefs
from cpa_operator._cogs.structs import credentials

SERVICE_ACCOUNT_DIR = '/var/run/secrets/kubernetes.io/serviceaccount'
DEFAULT_KUBECONFIG = '~/.kube/config'


def login(*, logger: typedefs.Logger) -> credentials.ConnectionInfo:
    """
    Login with the first available credentials: in-cluster, then kubeconfig.
    """
    info = login_with_service_account()
    if info is not None:
        logger.debug("Logged in with the in-cluster service account.")
        return info

    info = login_with_kubeconfig()
    if info is not None:
        logger.debug("Logged in with the kubeconfig file.")
        return info

    raise credentials.LoginError("Cannot login: neither in-cluster, nor via kubeconfig.")


def login_with_service_account(**_: Any) -> credentials.ConnectionInfo | None:
    """ Login with the pod's own service account, if mounted (i.e. in-cluster). """
    token_path = os.path.join(SERVICE_ACCOUNT_DIR, 'token')
    ns_path = os.path.join(SERVICE_ACCOUNT_DIR, 'namespace')
    ca_path = os.path.join(SERVICE_ACCOUNT_DIR, 'ca.crt')

    if not os.path.exists(token_path):
        return None

    with open(token_path, encoding='utf-8') as f:
        token = f.read().strip()

    namespace: str | None = None
    if os.path.exists(ns_path):
        with open(ns_path, encoding='utf-8') as f:
            namespace = f.read().strip()

    return credentials.ConnectionInfo(
        server='https://kubernetes.default.svc',
        ca_path=ca_path if os.path.exists(ca_path) else None,
        token=token or None,
        default_namespace=namespace or None,
    )


def login_with_kubeconfig(**_: Any) -> credentials.ConnectionInfo | None:
    """
    Login with the current context of the kubeconfig files.

    The files are taken from ``$KUBECONFIG`` (maybe several, as a path list),
    or from ``~/.kube/config``. The first found value of every field wins.
    Only the current context is used.
    """
    # As per https://kubernetes.io/docs/concepts/configuration/organize-cluster-access-kubeconfig/
    kubeconfig = os.environ.get('KUBECONFIG')
    if not kubeconfig and os.path.exists(os.path.expanduser(DEFAULT_KUBECONFIG)):
        kubeconfig = DEFAULT_KUBECONFIG
    if not kubeconfig:
        return None

    paths = [path.strip() for path in kubeconfig.split(os.pathsep)]
    paths = [os.path.expanduser(path) for path in paths if path]

    # The explicitly configured but absent or malformed files fail the login.
    current_context: str | None = None
    contexts: dict[Any, Any] = {}
    clusters: dict[Any, Any] = {}
    users: dict[Any, Any] = {}
    for path in paths:

        with open(path, encoding='utf-8') as f:
            config = yaml.safe_load(f.read()) or {}

        if current_context is None:
            current_context = config.get('current-context')
        for item in config.get('contexts') or []:
            contexts.setdefault(item['name'], item.get('context') or {})
        for item in config.get('clusters') or []:
            clusters.setdefault(item['name'], item.get('cluster') or {})
        for item in config.get('users') or []:
            users.setdefault(item['name'], item.get('user') or {})

    if current_context is None:
        raise credentials.LoginError('Current context is not set in kubeconfigs.')
    try:
        context = contexts[current_context]
        cluster = clusters[context['cluster']]
        user = users.get(context.get('user'), {})
    except KeyError as e:
        raise credentials.LoginError(f'Kubeconfig is incomplete: {e} is not found.') from e

    provider_token = user.get('auth-provider', {}).get('config', {}).get('access-token')
    return credentials.ConnectionInfo(
        server=cluster.get('server'),
        ca_path=cluster.get('certificate-authority'),
        ca_data=cluster.get('certificate-authority-data'),
        insecure=cluster.get('insecure-skip-tls-verify'),
        certificate_path=user.get('client-certificate'),
        certificate_data=user.get('client-certificate-data'),
        private_key_path=user.get('client-key'),
        private_key_data=user.get('client-key-data'),
        username=user.get('username'),
        password=user.get('password'),
        token=user.get('token') or provider_token,
        default_namespace=context.get('namespace'),
    )
