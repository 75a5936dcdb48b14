"""Cluster Client - Interface and implementations for the Kubernetes calls the bot needs."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ..errors import SlackBotError
from .retry import with_retry

logger = logging.getLogger(__name__)

JX_GROUP = "jenkins.io"
JX_VERSION = "v1"
ACTIVITY_PLURAL = "pipelineactivities"
USER_PLURAL = "users"

HTTP_GONE = 410

# Extra seconds the client waits past the server-side watch timeout
WATCH_READ_MARGIN = 5

WatchEventData = Tuple[str, Dict[str, Any]]


class WatchExpired(SlackBotError):
    """The resourceVersion a watch resumed from is too old; relist required."""
    pass


class ClusterClient(ABC):
    """Abstract interface for cluster access scoped to PipelineActivity records."""

    @abstractmethod
    def list_activities(self, namespace: str) -> Tuple[List[Dict[str, Any]], str]:
        """List PipelineActivity resources. Returns (items, resourceVersion)."""
        pass

    @abstractmethod
    def watch_activities(self, namespace: str, resource_version: str,
                         timeout_seconds: int) -> Iterator[WatchEventData]:
        """Stream (event type, resource) pairs after resource_version.

        Raises:
            WatchExpired: if resource_version is no longer available
        """
        pass

    @abstractmethod
    def list_users(self, namespace: str) -> List[Dict[str, Any]]:
        """List jx User resources linking git identities to chat accounts."""
        pass

    @abstractmethod
    def find_ingress_url(self, namespace: str, name: str) -> str:
        """Return the external URL of an ingress, or "" if it does not exist."""
        pass


class KubernetesClusterClient(ClusterClient):
    """Real cluster client using the kubernetes package."""

    def __init__(self, api_client: Any = None):
        """
        Args:
            api_client: Preconfigured kubernetes ApiClient; when None the in-cluster
                config is used, falling back to the local kubeconfig
        """
        from kubernetes import client, config

        if api_client is None:
            try:
                config.load_incluster_config()
            except config.ConfigException:
                config.load_kube_config()
        self._custom = client.CustomObjectsApi(api_client)
        self._networking = client.NetworkingV1Api(api_client)

    def list_activities(self, namespace: str) -> Tuple[List[Dict[str, Any]], str]:
        result = self._custom.list_namespaced_custom_object(
            JX_GROUP, JX_VERSION, namespace, ACTIVITY_PLURAL,
        )
        items = result.get("items") or []
        resource_version = (result.get("metadata") or {}).get("resourceVersion", "")
        return items, resource_version

    def watch_activities(self, namespace: str, resource_version: str,
                         timeout_seconds: int) -> Iterator[WatchEventData]:
        from kubernetes import watch
        from kubernetes.client.rest import ApiException

        w = watch.Watch()
        try:
            for event in w.stream(
                self._custom.list_namespaced_custom_object,
                JX_GROUP, JX_VERSION, namespace, ACTIVITY_PLURAL,
                resource_version=resource_version,
                timeout_seconds=timeout_seconds,
                _request_timeout=timeout_seconds + WATCH_READ_MARGIN,
            ):
                obj = event.get("raw_object") or event.get("object") or {}
                if event.get("type") == "ERROR":
                    if obj.get("code") == HTTP_GONE:
                        raise WatchExpired(obj.get("message", "resource version expired"))
                    raise SlackBotError(f"watch error: {obj.get('reason')}: {obj.get('message')}")
                yield event["type"], obj
        except ApiException as e:
            if e.status == HTTP_GONE:
                raise WatchExpired(str(e.reason)) from e
            raise
        finally:
            w.stop()

    @with_retry(max_retries=3, base_delay=0.5)
    def list_users(self, namespace: str) -> List[Dict[str, Any]]:
        result = self._custom.list_namespaced_custom_object(
            JX_GROUP, JX_VERSION, namespace, USER_PLURAL,
        )
        return result.get("items") or []

    def find_ingress_url(self, namespace: str, name: str) -> str:
        from kubernetes.client.rest import ApiException

        try:
            ingress = self._networking.read_namespaced_ingress(name, namespace)
        except ApiException as e:
            if e.status == 404:
                return ""
            raise

        rules = ingress.spec.rules or []
        if not rules or not rules[0].host:
            return ""
        host = rules[0].host
        tls_hosts = [h for tls in (ingress.spec.tls or []) for h in (tls.hosts or [])]
        scheme = "https" if host in tls_hosts else "http"
        return f"{scheme}://{host}"


class MockClusterClient(ClusterClient):
    """Mock client for testing.

    Watch streams are scripted: each call to watch_activities consumes the next
    entry of ``watch_scripts``, which is either a list of events or an exception.
    """

    def __init__(self):
        self.activities: Dict[str, Dict[str, Any]] = {}
        self.users: List[Dict[str, Any]] = []
        self.ingresses: Dict[str, str] = {}
        self.resource_version = "1"
        self.watch_scripts: List[Any] = []
        self.list_calls = 0
        self.watch_calls: List[str] = []
        self.user_error: Optional[Exception] = None
        # Seconds an exhausted script blocks, like a watch timing out server-side
        self.idle_wait = 0.01

    def put_activity(self, resource: Dict[str, Any]) -> None:
        self.activities[resource["metadata"]["name"]] = resource

    def list_activities(self, namespace: str) -> Tuple[List[Dict[str, Any]], str]:
        self.list_calls += 1
        items = [a for a in self.activities.values()
                 if a["metadata"].get("namespace", namespace) == namespace]
        return items, self.resource_version

    def watch_activities(self, namespace: str, resource_version: str,
                         timeout_seconds: int) -> Iterator[WatchEventData]:
        self.watch_calls.append(resource_version)
        if not self.watch_scripts:
            time.sleep(min(self.idle_wait, timeout_seconds))
            return
        script = self.watch_scripts.pop(0)
        if isinstance(script, Exception):
            raise script
        for event_type, obj in script:
            if isinstance(obj, Exception):
                raise obj
            yield event_type, obj

    def list_users(self, namespace: str) -> List[Dict[str, Any]]:
        if self.user_error is not None:
            raise self.user_error
        return list(self.users)

    def find_ingress_url(self, namespace: str, name: str) -> str:
        return self.ingresses.get(name, "")
