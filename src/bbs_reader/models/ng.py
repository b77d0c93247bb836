"""Domain models for NG (hide) rules and their persisted configuration."""

from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import Any, Literal

from bbs_reader.config import NG_CONFIG_VERSION

MatchType = Literal["partial", "regex"]
HideMode = Literal["hidden", "collapsed"]

DEFAULT_HIDE_MODE: HideMode = "collapsed"


class NGCategory(StrEnum):
    """Rule lists, named ``<scope>.<field>`` after the persisted layout."""

    THREAD_AUTHOR_IDS = "thread.authorIds"
    THREAD_TITLES = "thread.titles"
    RESPONSE_AUTHOR_IDS = "response.authorIds"
    RESPONSE_NAMES = "response.names"
    RESPONSE_BODIES = "response.bodies"

    @property
    def is_response_scoped(self) -> bool:
        return self.value.startswith("response.")


@dataclass(frozen=True)
class NGRule:
    """A single user-local filter rule."""

    id: str
    pattern: str
    match_type: MatchType = "partial"
    enabled: bool = True
    hide_mode: HideMode | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "pattern": self.pattern,
            "matchType": self.match_type,
            "enabled": self.enabled,
        }
        if self.hide_mode is not None:
            data["hideMode"] = self.hide_mode
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NGRule":
        """Build a rule from its stored form.

        Nested rule objects are not validated; odd values degrade to a rule
        that never matches rather than an error.
        """
        match_type = data.get("matchType")
        hide_mode = data.get("hideMode")
        return cls(
            id=str(data.get("id", "")),
            pattern=data["pattern"] if isinstance(data.get("pattern"), str) else "",
            match_type=match_type if match_type in ("partial", "regex") else "partial",
            enabled=data.get("enabled") is True,
            hide_mode=hide_mode if hide_mode in ("hidden", "collapsed") else None,
        )


def _rules_from_list(raw: Any) -> tuple[NGRule, ...]:
    if not isinstance(raw, list):
        return ()
    return tuple(NGRule.from_dict(item) for item in raw if isinstance(item, dict))


@dataclass(frozen=True)
class ThreadRules:
    author_ids: tuple[NGRule, ...] = ()
    titles: tuple[NGRule, ...] = ()


@dataclass(frozen=True)
class ResponseRules:
    author_ids: tuple[NGRule, ...] = ()
    names: tuple[NGRule, ...] = ()
    bodies: tuple[NGRule, ...] = ()


# category -> (scope attribute, rule list attribute)
_CATEGORY_FIELDS: dict[NGCategory, tuple[str, str]] = {
    NGCategory.THREAD_AUTHOR_IDS: ("thread", "author_ids"),
    NGCategory.THREAD_TITLES: ("thread", "titles"),
    NGCategory.RESPONSE_AUTHOR_IDS: ("response", "author_ids"),
    NGCategory.RESPONSE_NAMES: ("response", "names"),
    NGCategory.RESPONSE_BODIES: ("response", "bodies"),
}


@dataclass(frozen=True)
class NGWordsConfig:
    """The full, versioned rule configuration.

    Instances are never mutated; every edit produces a new config via
    ``with_rules``.
    """

    version: int = NG_CONFIG_VERSION
    thread: ThreadRules = field(default_factory=ThreadRules)
    response: ResponseRules = field(default_factory=ResponseRules)

    def rules(self, category: NGCategory) -> tuple[NGRule, ...]:
        scope, name = _CATEGORY_FIELDS[NGCategory(category)]
        return getattr(getattr(self, scope), name)  # type: ignore[no-any-return]

    def with_rules(self, category: NGCategory, rules: tuple[NGRule, ...]) -> "NGWordsConfig":
        """Return a copy with the rule list of category replaced."""
        scope, name = _CATEGORY_FIELDS[NGCategory(category)]
        new_scope = replace(getattr(self, scope), **{name: tuple(rules)})
        return replace(self, **{scope: new_scope})

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "thread": {
                "authorIds": [r.to_dict() for r in self.thread.author_ids],
                "titles": [r.to_dict() for r in self.thread.titles],
            },
            "response": {
                "authorIds": [r.to_dict() for r in self.response.author_ids],
                "names": [r.to_dict() for r in self.response.names],
                "bodies": [r.to_dict() for r in self.response.bodies],
            },
        }

    @classmethod
    def from_dict(cls, data: Any) -> "NGWordsConfig":
        """Build a config from its stored form.

        Only the top-level shape is checked: ``version``, ``thread`` and
        ``response`` must be present and truthy.
        """
        if not isinstance(data, dict):
            msg = f"NG config must be an object, got {type(data).__name__}"
            raise ValueError(msg)
        if not data.get("version") or not data.get("thread") or not data.get("response"):
            msg = "Invalid NG config structure: missing version, thread or response"
            raise ValueError(msg)
        thread = data["thread"] if isinstance(data["thread"], dict) else {}
        response = data["response"] if isinstance(data["response"], dict) else {}
        version = data["version"]
        return cls(
            version=version if isinstance(version, int) else NG_CONFIG_VERSION,
            thread=ThreadRules(
                author_ids=_rules_from_list(thread.get("authorIds")),
                titles=_rules_from_list(thread.get("titles")),
            ),
            response=ResponseRules(
                author_ids=_rules_from_list(response.get("authorIds")),
                names=_rules_from_list(response.get("names")),
                bodies=_rules_from_list(response.get("bodies")),
            ),
        )


@dataclass(frozen=True)
class FilterResult:
    """Outcome of evaluating NG rules against one thread or response."""

    filtered: bool
    hide_mode: HideMode | None = None


NOT_FILTERED = FilterResult(filtered=False, hide_mode=None)
