"""
Source Configs

Per-repository notification preferences, read from a Jenkins X style
source-config YAML file:

    spec:
      slack:
        channel: "#builds"
      groups:
        - owner: myorg
          slack:
            channel: "#myorg"
          repositories:
            - name: myapp
              slack:
                notify: false
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotifyConfig:
    """Where (and whether) to notify for one repository."""
    notify: bool = True
    channel: Optional[str] = None


def _mapping(value: Any, where: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f'source config {where} must be a mapping, got {type(value).__name__}')
    return value


def _sequence(value: Any, where: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f'source config {where} must be a list, got {type(value).__name__}')
    return value


def _parse_slack(slack: Optional[Dict[str, Any]], parent: NotifyConfig) -> NotifyConfig:
    """Overlay a `slack:` block on top of the inherited settings."""
    if not slack:
        return parent
    notify = parent.notify
    if 'notify' in slack:
        notify = bool(slack['notify'])
    if str(slack.get('pipeline', '')).lower() == 'none':
        notify = False
    return NotifyConfig(notify=notify, channel=slack.get('channel') or parent.channel)


class SourceConfigs:
    """Lookup of repository → NotifyConfig. Most specific entry wins."""

    def __init__(self, defaults: Optional[NotifyConfig] = None,
                 groups: Optional[Dict[str, NotifyConfig]] = None,
                 repositories: Optional[Dict[str, NotifyConfig]] = None):
        self.defaults = defaults or NotifyConfig()
        self.groups = groups or {}
        self.repositories = repositories or {}

    def lookup(self, owner: str, repository: str) -> NotifyConfig:
        """
        Find the notification settings for a repository.

        Args:
            owner: Git owner / organisation
            repository: Repository name

        Returns:
            NotifyConfig from the repository entry, its group, or the defaults
        """
        key = f'{owner}/{repository}'.lower()
        if key in self.repositories:
            return self.repositories[key]
        return self.groups.get(owner.lower(), self.defaults)

    def __len__(self) -> int:
        return len(self.repositories)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'SourceConfigs':
        """
        Build the lookup from a parsed source-config document.

        Raises:
            ConfigError: if a section does not have the expected shape
        """
        spec = _mapping(_mapping(data, 'document').get('spec'), 'spec')
        defaults = _parse_slack(_mapping(spec.get('slack'), 'spec.slack'), NotifyConfig())

        groups: Dict[str, NotifyConfig] = {}
        repositories: Dict[str, NotifyConfig] = {}
        for i, group in enumerate(_sequence(spec.get('groups'), 'spec.groups')):
            group = _mapping(group, f'spec.groups[{i}]')
            owner = group.get('owner')
            if not owner:
                logger.warning('Ignoring source config group without an owner')
                continue
            owner = str(owner)
            group_config = _parse_slack(_mapping(group.get('slack'), f'{owner}.slack'), defaults)
            groups[owner.lower()] = group_config
            for j, repo in enumerate(_sequence(group.get('repositories'), f'{owner}.repositories')):
                repo = _mapping(repo, f'{owner}.repositories[{j}]')
                name = repo.get('name')
                if not name:
                    continue
                slack = _mapping(repo.get('slack'), f'{owner}/{name}.slack')
                repositories[f'{owner}/{name}'.lower()] = _parse_slack(slack, group_config)

        return cls(defaults=defaults, groups=groups, repositories=repositories)

    @classmethod
    def load(cls, path: Optional[str]) -> 'SourceConfigs':
        """
        Load source configs from a YAML file.

        Args:
            path: File path; None means "notify everything to the default channel"

        Raises:
            ConfigError: if the file cannot be read or parsed
        """
        if not path:
            return cls()
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f'failed to load source configs from {path}: {e}') from e

        try:
            configs = cls.from_dict(data)
        except ConfigError as e:
            raise ConfigError(f'invalid source configs in {path}: {e}') from e
        logger.info('Loaded %d repository source configs from %s', len(configs), path)
        return configs
