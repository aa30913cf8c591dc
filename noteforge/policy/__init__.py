"""
Page policy: script facades, the script runtime and the evaluator.
"""

from .facade import BlockFacade, PageFacade
from .script import PageScript
from .evaluator import PageOutcome, PolicyEvaluator

__all__ = [
    'BlockFacade',
    'PageFacade',
    'PageScript',
    'PageOutcome',
    'PolicyEvaluator',
]
