from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from prdeck.log_parser import LogLine, clean_job_name, parse_job_log
from prdeck.models import JobLogText, JobMetadata


NodePath = tuple[int, ...]
ROOT: NodePath = ()
STEP_DEPTH = 3
LINE_DEPTH = 4


@dataclass(frozen=True)
class StepNode:
    name: str
    lines: tuple[LogLine, ...] = ()
    error_count: int = field(init=False, default=0)
    has_failures: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        count = sum(1 for line in self.lines if line.is_error)
        object.__setattr__(self, "error_count", count)
        object.__setattr__(self, "has_failures", count > 0)


@dataclass(frozen=True)
class JobNode:
    name: str
    steps: tuple[StepNode, ...] = ()
    error_count: int = field(init=False, default=0)
    has_failures: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "error_count", sum(step.error_count for step in self.steps))
        object.__setattr__(self, "has_failures", any(step.has_failures for step in self.steps))


@dataclass(frozen=True)
class WorkflowNode:
    name: str
    jobs: tuple[JobNode, ...] = ()
    error_count: int = field(init=False, default=0)
    has_failures: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "error_count", sum(job.error_count for job in self.jobs))
        object.__setattr__(self, "has_failures", any(job.has_failures for job in self.jobs))


@dataclass(frozen=True)
class LogTree:
    workflows: tuple[WorkflowNode, ...] = ()
    error_count: int = field(init=False, default=0)
    has_failures: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "error_count", sum(workflow.error_count for workflow in self.workflows)
        )
        object.__setattr__(
            self, "has_failures", any(workflow.has_failures for workflow in self.workflows)
        )


TreeNode = LogTree | WorkflowNode | JobNode | StepNode | LogLine


def children(node: TreeNode) -> tuple[TreeNode, ...]:
    if isinstance(node, LogTree):
        return node.workflows
    if isinstance(node, WorkflowNode):
        return node.jobs
    if isinstance(node, JobNode):
        return node.steps
    if isinstance(node, StepNode):
        return node.lines
    return ()


def node_at(tree: LogTree, path: NodePath) -> TreeNode | None:
    node: TreeNode = tree
    for index in path:
        kids = children(node)
        if index < 0 or index >= len(kids):
            return None
        node = kids[index]
    return node


def is_valid_path(tree: LogTree, path: NodePath) -> bool:
    return node_at(tree, path) is not None


def children_of(tree: LogTree, path: NodePath) -> tuple[TreeNode, ...]:
    node = node_at(tree, path)
    if node is None:
        return ()
    return children(node)


def child_count(tree: LogTree, path: NodePath) -> int:
    return len(children_of(tree, path))


def node_has_failures(node: TreeNode) -> bool:
    if isinstance(node, LogLine):
        return node.is_error
    return node.has_failures


def node_name(node: TreeNode) -> str:
    if isinstance(node, LogTree):
        return ""
    if isinstance(node, LogLine):
        return node.text
    return node.name


def metadata_key(workflow_name: str, job_name: str) -> str:
    return f"{workflow_name}:{job_name}"


def build_log_tree(jobs: Iterable[JobLogText]) -> tuple[LogTree, dict[str, JobMetadata]]:
    jobs_by_workflow: dict[str, list[JobNode]] = {}
    metadata: dict[str, JobMetadata] = {}
    for job in jobs:
        job_name = clean_job_name(job.metadata.name)
        steps = tuple(StepNode(name=name, lines=lines) for name, lines in parse_job_log(job.text))
        if not steps and "/system" in job_name:
            continue
        workflow_name = job.metadata.workflow_name
        jobs_by_workflow.setdefault(workflow_name, []).append(JobNode(name=job_name, steps=steps))
        metadata[metadata_key(workflow_name, job_name)] = job.metadata

    workflows = [
        WorkflowNode(name=name, jobs=tuple(sorted(job_nodes, key=lambda job: job.name)))
        for name, job_nodes in jobs_by_workflow.items()
    ]
    workflows.sort(key=lambda workflow: (not workflow.has_failures, workflow.name))
    return LogTree(workflows=tuple(workflows)), metadata


def default_expansion(tree: LogTree) -> frozenset[NodePath]:
    expanded: set[NodePath] = set()
    for w_index, workflow in enumerate(tree.workflows):
        expanded.add((w_index,))
        for j_index, job in enumerate(workflow.jobs):
            if not job.has_failures:
                continue
            expanded.add((w_index, j_index))
            for s_index, step in enumerate(job.steps):
                if step.has_failures:
                    expanded.add((w_index, j_index, s_index))
    return frozenset(expanded)
