"""
Slack User Resolver

Maps a commit author to a Slack user so notifications can mention them.

Resolution order:
1. Exact (case-insensitive) email match in the Slack user directory
2. A jx User resource in the cluster linking the git identity to a Slack account
3. Unresolved: the raw author name is shown without a mention
"""

import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple

from .api.cluster import ClusterClient
from .api.slack import SlackClient
from .models import ResolutionMethod, ResolvedUser

logger = logging.getLogger(__name__)

DEFAULT_TTL = 600.0
DEFAULT_MAX_ENTRIES = 1024


class TTLCache:
    """Bounded, time-expiring map. Oldest entries are evicted first."""

    def __init__(self, ttl: float = DEFAULT_TTL, max_entries: int = DEFAULT_MAX_ENTRIES,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._data: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._data.pop(key, None)
            self._data[key] = (self._clock() + self.ttl, value)
            while len(self._data) > self.max_entries:
                self._data.popitem(last=False)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


def _slack_account(user: Dict[str, Any]) -> Optional[str]:
    """The Slack user ID linked to a jx User resource, if any."""
    spec = user.get('spec') or {}
    for account in spec.get('accounts') or []:
        if str(account.get('provider') or '').lower() == 'slack' and account.get('id'):
            return account['id']
    return None


def _git_logins(user: Dict[str, Any]) -> set:
    spec = user.get('spec') or {}
    logins = {spec.get('login'), spec.get('name'), (user.get('metadata') or {}).get('name')}
    for account in spec.get('accounts') or []:
        if str(account.get('provider') or '').lower() != 'slack':
            logins.add(account.get('login'))
            logins.add(account.get('id'))
    return {str(l).lower() for l in logins if l}


class SlackUserResolver:
    """
    Resolves commit authors to Slack users, with caching.

    Usage:
        resolver = SlackUserResolver(slack_client, cluster_client, namespace)
        user = resolver.resolve("Jane Dev", "jane@example.com")
        text = f"triggered by {user.mention}"
    """

    def __init__(
        self,
        slack_client: SlackClient,
        cluster_client: Optional[ClusterClient],
        namespace: str,
        cache: Optional[TTLCache] = None,
    ):
        """
        Args:
            slack_client: Client used for the Slack directory lookup
            cluster_client: Client used for the jx User fallback (None disables it)
            namespace: Namespace holding the jx User resources
            cache: Identity cache (defaults to a 10 minute TTL cache)
        """
        self.slack_client = slack_client
        self.cluster_client = cluster_client
        self.namespace = namespace
        self.cache = cache if cache is not None else TTLCache()

    def resolve(self, author_name: str, author_email: str) -> ResolvedUser:
        """
        Resolve a commit author.

        Never raises: lookup failures are logged and the chain continues, ending
        at an unresolved result that shows the raw author name. Results reached
        after a failed lookup are not cached, so the next event tries again.

        Args:
            author_name: Git author name (may be empty)
            author_email: Git author email (may be empty)

        Returns:
            ResolvedUser
        """
        author_name = (author_name or '').strip()
        email = (author_email or '').strip().lower()
        cache_key = email or f'name:{author_name.lower()}'

        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        user = None
        failed = False
        if email:
            try:
                user = self._lookup_slack_directory(email, author_name)
            except Exception as e:
                logger.warning('Slack user lookup failed for %s: %s', email, e)
                failed = True
        if user is None and self.cluster_client is not None:
            try:
                user = self._lookup_cluster_users(author_name, email)
            except Exception as e:
                logger.warning('Failed to match users in namespace %s: %s', self.namespace, e)
                failed = True
        if user is None:
            logger.debug('Could not resolve a Slack user for %s <%s>', author_name, email)
            user = ResolvedUser.unresolved(author_name)

        if not failed or user.resolved:
            self.cache.put(cache_key, user)
        return user

    def _lookup_slack_directory(self, email: str, author_name: str) -> Optional[ResolvedUser]:
        found = self.slack_client.lookup_user_by_email(email)
        if not found or not found.get('id'):
            return None
        profile = found.get('profile') or {}
        display_name = (profile.get('display_name') or profile.get('real_name')
                        or found.get('name') or author_name)
        return ResolvedUser(display_name=display_name, method=ResolutionMethod.EMAIL,
                            user_id=found['id'])

    def _lookup_cluster_users(self, author_name: str, email: str) -> Optional[ResolvedUser]:
        users = self.cluster_client.list_users(self.namespace)
        name = author_name.lower()
        for user in users:
            slack_id = _slack_account(user)
            if not slack_id:
                continue
            spec = user.get('spec') or {}
            email_match = email and str(spec.get('email') or '').lower() == email
            name_match = name and name in _git_logins(user)
            if email_match or name_match:
                return ResolvedUser(
                    display_name=str(spec.get('name') or author_name),
                    method=ResolutionMethod.USERNAME,
                    user_id=str(slack_id),
                )
        return None
