"""
Content workflow and consistency engine.

- ordering.py: contiguous per-language lesson indexes
- lifecycle.py: draft/finished/published transitions and publish gating
- cascade.py: soft-delete propagation with lesson reference counting
- merger.py: proverb find-or-create by normalized text
- sanitizer.py: validation and dedup of LLM output
- scope.py: language scoping of actors
- partitions.py: optional per-language lock for lesson ordering operations
- links.py: post-write check that linked lessons kept their language
"""

from contentflow.workflow.cascade import CascadeDeletionCoordinator
from contentflow.workflow.lifecycle import LifecycleStateMachine
from contentflow.workflow.merger import ReusableEntityMerger
from contentflow.workflow.ordering import OrderIndexManager
from contentflow.workflow.partitions import PartitionSerializer
from contentflow.workflow.sanitizer import AiContentSanitizer
from contentflow.workflow.scope import Scope, ScopeGuard

__all__ = [
    "AiContentSanitizer",
    "CascadeDeletionCoordinator",
    "LifecycleStateMachine",
    "OrderIndexManager",
    "PartitionSerializer",
    "ReusableEntityMerger",
    "Scope",
    "ScopeGuard",
]
