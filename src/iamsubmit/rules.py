"""
Summation rules state which child regions add up to a parent region for a
given list of variables.

Rules are plain immutable records. Named rule sets ("templates") are read from
YAML files, by default from the ``summations`` folder shipped with
iamsubmit::

    rules:
      - parent: World
        children: [R5ASIA, R5LAM, R5MAF, R5OECD90+EU, R5REF]
        variables:
          - Emissions|CO2
          - Final Energy

Resolved templates can be memoized in a :class:`RuleSetCache` that is owned by
the caller.
"""

import os
import threading
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

import yaml

from iamsubmit import utils
from iamsubmit.errors import ConfigurationError


@dataclass(frozen=True)
class SummationRule:
    parent: str
    children: tuple[str, ...]
    variables: tuple[str, ...]


@dataclass(frozen=True)
class SummationRuleSet:
    name: Optional[str]
    rules: tuple[SummationRule, ...]


def _as_tuple(x):
    if x is None:
        return ()
    if utils.isstr(x):
        return (x,)
    return tuple(x)


def _as_rule(obj):
    if isinstance(obj, SummationRule):
        obj = dict(
            parent=obj.parent, children=obj.children, variables=obj.variables
        )
    if not isinstance(obj, Mapping):
        raise ConfigurationError(f"Can not interpret {obj!r} as a summation rule")
    unknown = set(obj) - {"parent", "children", "variables"}
    if unknown:
        raise ConfigurationError(
            f"Unknown keys {sorted(unknown)} in summation rule {dict(obj)}"
        )
    return SummationRule(
        parent=obj.get("parent"),
        children=_as_tuple(obj.get("children")),
        variables=_as_tuple(obj.get("variables")),
    )


def rule_problems(rule):
    """
    Return a list of everything that is wrong with `rule`.
    """
    problems = []
    if not rule.parent or not utils.isstr(rule.parent):
        problems.append("parent region is missing")
    if not rule.children:
        problems.append("no child regions")
    elif len(set(rule.children)) != len(rule.children):
        dups = sorted({c for c in rule.children if rule.children.count(c) > 1})
        problems.append(f"duplicate child regions {dups}")
    if rule.parent in rule.children:
        problems.append(f"parent region {rule.parent} is among its children")
    if not rule.variables:
        problems.append("no variables")
    return problems


def validate_rules(rules, name=None):
    """
    Validate `rules` and return them as a :class:`SummationRuleSet`.

    Raises
    ------
    ConfigurationError
        if there are no rules or if any rule is malformed; the message lists
        every malformed rule
    """
    rules = tuple(_as_rule(r) for r in rules)
    if not rules:
        raise ConfigurationError(
            "Empty summation rule set" + (f" for template {name}" if name else "")
        )

    invalid = []
    for i, rule in enumerate(rules):
        problems = rule_problems(rule)
        if problems:
            invalid.append(f"  rule {i} (parent {rule.parent}): {'; '.join(problems)}")
    if invalid:
        raise ConfigurationError(
            "Invalid summation rules"
            + (f" in template {name}" if name else "")
            + ":\n"
            + "\n".join(invalid)
        )

    # variables are a set, keep them sorted for stable reports
    rules = tuple(replace(r, variables=tuple(sorted(set(r.variables)))) for r in rules)
    return SummationRuleSet(name=name, rules=rules)


def restrict_rule_set(rule_set, variables):
    """
    Restrict `rule_set` to the `variables` present in a dataset.

    Rules are kept in order, with their variables intersected with
    `variables`; rules without any remaining variable are dropped. The result
    may be empty.
    """
    variables = set(variables)
    rules = []
    for rule in rule_set.rules:
        kept = tuple(v for v in rule.variables if v in variables)
        if kept:
            rules.append(replace(rule, variables=kept))
    return SummationRuleSet(name=rule_set.name, rules=tuple(rules))


class RuleSetCache:
    """
    Memoizes resolved rule sets by template name.

    Lookups and population happen under a single lock, so concurrent
    requesters of an unresolved name wait for the first one to store it.
    """

    def __init__(self):
        self._store = {}
        self._lock = threading.Lock()

    def get(self, name, resolve):
        """
        Return the rule set for `name`, calling `resolve(name)` on a miss.
        """
        with self._lock:
            if name not in self._store:
                utils.logger().debug(f"Resolving summation template {name}")
                self._store[name] = resolve(name)
            return self._store[name]

    def clear(self):
        with self._lock:
            self._store.clear()

    def __contains__(self, name):
        with self._lock:
            return name in self._store

    def __len__(self):
        with self._lock:
            return len(self._store)


class TemplateRegistry:
    """
    Looks up summation templates as ``<name>.yaml`` files.

    Parameters
    ----------
    directories : list of paths, optional
        directories searched before the templates shipped with iamsubmit
    """

    def __init__(self, directories=None):
        if isinstance(directories, Path):
            directories = [directories]
        self.directories = [Path(d) for d in _as_tuple(directories)]
        self.directories.append(Path(utils.summations_path("")))

    def _find(self, name):
        for d in self.directories:
            fname = d / f"{name}.yaml"
            if fname.exists():
                return fname
        return None

    def names(self):
        """
        Names of all templates available, sorted.
        """
        found = set()
        for d in self.directories:
            if d.is_dir():
                found |= {
                    os.path.splitext(f)[0] for f in os.listdir(d) if f.endswith(".yaml")
                }
        return sorted(found)

    def __call__(self, name):
        fname = self._find(name)
        if fname is None:
            raise ConfigurationError(
                f"Unknown summation template {name}, "
                f"available are: {', '.join(self.names())}"
            )
        with open(fname) as f:
            content = yaml.safe_load(f) or {}
        if not isinstance(content, Mapping) or "rules" not in content:
            raise ConfigurationError(f"No `rules` defined in {fname}")
        return content["rules"] or []


def load_rule_set(template_or_rules, registry=None, cache=None):
    """
    Load a summation rule set.

    Parameters
    ----------
    template_or_rules : str, SummationRuleSet or iterable of rules
        a template name, resolved through `registry`, or explicit rules given
        as :class:`SummationRule` objects or mappings with the keys
        ``parent``, ``children`` and ``variables``
    registry : callable, optional
        maps a template name to its rules, defaults to
        :class:`TemplateRegistry`
    cache : RuleSetCache, optional
        memoizes resolved templates by name; without a cache every call
        resolves the template again

    Returns
    -------
    rule_set : SummationRuleSet

    Raises
    ------
    ConfigurationError
        if the rules are empty or malformed, or the template is unknown
    """
    if isinstance(template_or_rules, SummationRuleSet):
        return validate_rules(template_or_rules.rules, name=template_or_rules.name)

    if not utils.isstr(template_or_rules):
        return validate_rules(template_or_rules)

    registry = registry or TemplateRegistry()

    def resolve(name):
        rules = registry(name)
        if isinstance(rules, SummationRuleSet):
            rules = rules.rules
        return validate_rules(rules, name=name)

    if cache is None:
        return resolve(template_or_rules)
    return cache.get(template_or_rules, resolve)
