"""Routing tree: match/drop rules and the recursive evaluator.

Submodules:
    rules -- Rule, a single match or drop criterion.
    route -- Route tree, Router and receiver-reference validation.
"""

from kube_event_exporter.routing.route import Route, Router, validate_receivers
from kube_event_exporter.routing.rules import Rule

__all__ = ["Route", "Router", "Rule", "validate_receivers"]
