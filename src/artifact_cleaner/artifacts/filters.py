"""
Priority-ordered include/exclude filters for discovered artifacts.

A rule matches a regular expression against one field of an artifact.
The filter asks its rules in ascending priority order (lower number wins)
and the first rule that matches decides the action; when no rule matches,
the filter's default action applies.

Rules are kept in insertion order and re-sorted lazily: every mutation
marks the rule list dirty and the next read sorts it once. Rules that
share a priority have no defined order relative to each other.
"""

import logging
import re
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from artifact_cleaner.artifacts.models import DiscoveredArtifact
from artifact_cleaner.core.exceptions import ConfigurationError, RuleValidationError

logger = logging.getLogger(__name__)


class FilterAction(Enum):
    """What to do with an artifact a rule matches."""

    INCLUDE = "include"
    EXCLUDE = "exclude"


class ArtifactField(Enum):
    """Artifact properties a rule can match against."""

    URI = "uri"
    REPO = "repo"
    PATH = "path"
    DOWNLOAD_URI = "download_uri"
    MIME_TYPE = "mime_type"
    SIZE = "size"
    CREATED = "created"
    LAST_MODIFIED = "last_modified"
    LAST_DOWNLOADED = "last_downloaded"


_FIELD_ACCESSORS: dict[ArtifactField, Callable[[DiscoveredArtifact], Any]] = {
    ArtifactField.URI: lambda a: a.uri,
    ArtifactField.REPO: lambda a: a.repo,
    ArtifactField.PATH: lambda a: a.relative_path,
    ArtifactField.DOWNLOAD_URI: lambda a: a.download_uri,
    ArtifactField.MIME_TYPE: lambda a: a.mime_type,
    ArtifactField.SIZE: lambda a: a.size,
    ArtifactField.CREATED: lambda a: a.created,
    ArtifactField.LAST_MODIFIED: lambda a: a.last_modified,
    ArtifactField.LAST_DOWNLOADED: lambda a: a.last_downloaded,
}

# Accepted spellings for rule definition keys
_KEY_ALIASES = {
    "action": "action",
    "priority": "priority",
    "field": "field",
    "property": "field",
    "pattern": "pattern",
    "regex": "pattern",
    "regexp": "pattern",
}


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


@dataclass(frozen=True)
class ArtifactFilterRule:
    """
    A single include/exclude rule.

    ``action``, ``field`` and ``pattern`` may be given as strings; they are
    validated and converted when the rule is built.
    """

    action: FilterAction = FilterAction.INCLUDE
    priority: int = 0
    field: ArtifactField = ArtifactField.URI
    pattern: re.Pattern | str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "action", self._coerce_action(self.action))
        object.__setattr__(self, "field", self._coerce_field(self.field))
        object.__setattr__(self, "pattern", self._coerce_pattern(self.pattern))
        try:
            object.__setattr__(self, "priority", int(self.priority))
        except (TypeError, ValueError) as e:
            raise RuleValidationError(
                "Rule priority must be an integer", field="priority", value=self.priority
            ) from e

    @staticmethod
    def _coerce_action(value: Any) -> FilterAction:
        if isinstance(value, FilterAction):
            return value
        try:
            return FilterAction(str(value).lower())
        except ValueError as e:
            raise RuleValidationError(
                "Rule action must be 'include' or 'exclude'", field="action", value=value
            ) from e

    @staticmethod
    def _coerce_field(value: Any) -> ArtifactField:
        if isinstance(value, ArtifactField):
            return value
        try:
            return ArtifactField(str(value).lower())
        except ValueError as e:
            allowed = ", ".join(f.value for f in ArtifactField)
            raise RuleValidationError(
                f"Unknown artifact field; expected one of: {allowed}",
                field="field",
                value=value,
            ) from e

    @staticmethod
    def _coerce_pattern(value: Any) -> re.Pattern:
        if isinstance(value, re.Pattern):
            return value
        if not isinstance(value, str):
            raise RuleValidationError(
                f"Rule pattern must be a string or compiled regex, got {type(value).__name__}",
                field="pattern",
            )
        try:
            return re.compile(value)
        except re.error as e:
            raise RuleValidationError(
                f"Invalid rule pattern: {e}", field="pattern", value=value
            ) from e

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ArtifactFilterRule":
        """Build a rule from an external definition such as a YAML entry."""
        if not isinstance(data, dict):
            raise RuleValidationError(
                f"Rule definition must be a mapping, got {type(data).__name__}"
            )
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = _KEY_ALIASES.get(str(key).lower())
            if name is None:
                raise RuleValidationError(f"Unknown rule key: {key}", field=str(key))
            kwargs[name] = value
        return cls(**kwargs)

    def value_of(self, artifact: DiscoveredArtifact) -> str:
        """String form of the selected field."""
        return _as_text(_FIELD_ACCESSORS[self.field](artifact))

    def matches(self, artifact: DiscoveredArtifact) -> bool:
        return self.pattern.search(self.value_of(artifact)) is not None

    def action_for(self, artifact: DiscoveredArtifact) -> FilterAction | None:
        """The rule's action if it matches, otherwise None (no opinion)."""
        if self.matches(artifact):
            return self.action
        return None

    def includes(self, artifact: DiscoveredArtifact) -> bool:
        return self.action is FilterAction.INCLUDE and self.matches(artifact)

    def excludes(self, artifact: DiscoveredArtifact) -> bool:
        return self.action is FilterAction.EXCLUDE and self.matches(artifact)


def _require_rule(rule: object) -> ArtifactFilterRule:
    if not isinstance(rule, ArtifactFilterRule):
        raise TypeError(f"expected ArtifactFilterRule, got {type(rule).__name__}")
    return rule


class ArtifactFilter:
    """
    An ordered set of filter rules with a default action.

    Reads (iteration, indexing, ``action_for``) always observe the rules in
    ascending priority order.
    """

    def __init__(
        self,
        rules: Iterable[ArtifactFilterRule] = (),
        default_action: FilterAction | str = FilterAction.INCLUDE,
    ):
        self._rules: list[ArtifactFilterRule] = []
        self._sorted = True
        self.default_action = default_action
        self.extend(rules)

    @property
    def default_action(self) -> FilterAction:
        return self._default_action

    @default_action.setter
    def default_action(self, value: FilterAction | str) -> None:
        self._default_action = ArtifactFilterRule._coerce_action(value)

    def _sort_if_needed(self) -> None:
        if not self._sorted:
            self._rules.sort(key=lambda r: r.priority)
            self._sorted = True

    # Mutation

    def push(self, rule: ArtifactFilterRule) -> "ArtifactFilter":
        self._rules.append(_require_rule(rule))
        self._sorted = False
        return self

    append = push

    def unshift(self, rule: ArtifactFilterRule) -> "ArtifactFilter":
        self._rules.insert(0, _require_rule(rule))
        self._sorted = False
        return self

    def extend(self, rules: Iterable[ArtifactFilterRule]) -> "ArtifactFilter":
        for rule in rules:
            self.push(rule)
        return self

    def __setitem__(self, index: int, rule: ArtifactFilterRule) -> None:
        self._sort_if_needed()
        self._rules[index] = _require_rule(rule)
        self._sorted = False

    def __delitem__(self, index) -> None:
        self._sort_if_needed()
        del self._rules[index]

    def clear(self) -> None:
        self._rules.clear()
        self._sorted = True

    # Reads

    def sort(self) -> "ArtifactFilter":
        self._sort_if_needed()
        return self

    def __getitem__(self, index):
        self._sort_if_needed()
        return self._rules[index]

    def __iter__(self) -> Iterator[ArtifactFilterRule]:
        self._sort_if_needed()
        return iter(list(self._rules))

    def __len__(self) -> int:
        return len(self._rules)

    @property
    def rules(self) -> tuple[ArtifactFilterRule, ...]:
        self._sort_if_needed()
        return tuple(self._rules)

    def action_for(self, artifact: DiscoveredArtifact) -> FilterAction:
        """Action of the highest-precedence matching rule, else the default."""
        self._sort_if_needed()
        for rule in self._rules:
            action = rule.action_for(artifact)
            if action is not None:
                return action
        return self._default_action

    def filter(
        self,
        artifacts: Iterable[DiscoveredArtifact],
        action: FilterAction = FilterAction.INCLUDE,
    ) -> list[DiscoveredArtifact]:
        """Artifacts whose resolved action equals ``action``."""
        return [a for a in artifacts if self.action_for(a) is action]

    # Loading

    def load_rules(self, definitions: Iterable[dict[str, Any]]) -> "ArtifactFilter":
        """Add rules built from external definitions."""
        for definition in definitions:
            self.push(ArtifactFilterRule.from_dict(definition))
        return self

    @classmethod
    def from_yaml(cls, path: Path) -> "ArtifactFilter":
        """
        Load a filter from a YAML file.

        The file holds either a list of rule mappings, or a mapping with an
        optional ``default_action`` and a ``rules`` list.

        Raises:
            ConfigurationError: If the file cannot be read or parsed
            RuleValidationError: If a rule definition is invalid
        """
        path = Path(path)
        try:
            data = yaml.safe_load(path.read_text())
        except OSError as e:
            raise ConfigurationError(
                f"Unable to read filter file: {e}", config_file=str(path)
            ) from e
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Invalid YAML in filter file: {e}", config_file=str(path)
            ) from e

        if data is None:
            return cls()
        if isinstance(data, list):
            definitions, default_action = data, FilterAction.INCLUDE
        elif isinstance(data, dict):
            definitions = data.get("rules") or []
            default_action = data.get("default_action", FilterAction.INCLUDE)
        else:
            raise ConfigurationError(
                "Filter file must contain a list of rules or a mapping",
                config_file=str(path),
            )

        artifact_filter = cls(default_action=default_action).load_rules(definitions)
        logger.debug(f"Loaded {len(artifact_filter)} filter rules from {path}")
        return artifact_filter
