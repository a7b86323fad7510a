"""
Lightweight DAG runner for bulk validation.

- Tasks run in dependency order (Kahn's algorithm)
- Each task sees the merged results of its upstream tasks
- A failing task marks its dependents as skipped instead of aborting the run
- Per-task status and timing are kept for the run summary
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

TaskFn = Callable[[dict[str, Any]], dict[str, Any] | None]


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class TaskNode:
    """A single step of a pipeline."""

    name: str
    execute_fn: TaskFn
    depends_on: list[str] = field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING
    result: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    duration_ms: float = 0.0


class DAG:
    """
    A directed acyclic graph of TaskNodes.

    Usage:
        dag = DAG("bulk_validation")
        dag.add_task("extract", extract)
        dag.add_task("parse", parse, depends_on=["extract"])
        summary = dag.run({"resources": [...], "constraint_set": profile})
    """

    def __init__(self, name: str):
        self.name = name
        self.tasks: dict[str, TaskNode] = {}

    def add_task(
        self,
        name: str,
        execute_fn: TaskFn,
        depends_on: list[str] | None = None,
    ) -> DAG:
        if name in self.tasks:
            raise ValueError(f"Duplicate task name: {name}")
        self.tasks[name] = TaskNode(name=name, execute_fn=execute_fn, depends_on=depends_on or [])
        return self

    def result(self, name: str) -> dict[str, Any]:
        return self.tasks[name].result

    def execution_order(self) -> list[str]:
        """Task names in dependency order; raises ValueError on unknown deps or cycles."""
        in_degree = {name: 0 for name in self.tasks}
        dependents: dict[str, list[str]] = {name: [] for name in self.tasks}
        for task in self.tasks.values():
            for dep in task.depends_on:
                if dep not in self.tasks:
                    raise ValueError(f"Task '{task.name}' depends on unknown task '{dep}'")
                in_degree[task.name] += 1
                dependents[dep].append(task.name)

        ready = deque(name for name, degree in in_degree.items() if degree == 0)
        order: list[str] = []
        while ready:
            current = ready.popleft()
            order.append(current)
            for name in dependents[current]:
                in_degree[name] -= 1
                if in_degree[name] == 0:
                    ready.append(name)

        if len(order) != len(self.tasks):
            raise ValueError("Cycle detected in DAG")
        return order

    def run(self, initial_context: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Execute every task once, in dependency order.
        Returns a summary with per-task status and every ``*_count`` a task produced.
        """
        order = self.execution_order()
        context = dict(initial_context or {})
        summary: dict[str, Any] = {"pipeline": self.name, "tasks": {}, "record_counts": {}}

        logger.info("Starting pipeline '%s' with %d tasks", self.name, len(self.tasks))

        for task_name in order:
            task = self.tasks[task_name]

            if any(self.tasks[dep].status != TaskStatus.SUCCESS for dep in task.depends_on):
                task.status = TaskStatus.SKIPPED
                logger.warning("Skipping '%s' – upstream dependency did not succeed", task_name)
                summary["tasks"][task_name] = {"status": task.status.value}
                continue

            for dep in task.depends_on:
                context.update(self.tasks[dep].result)

            task.status = TaskStatus.RUNNING
            logger.info("Running task '%s'", task_name)
            start = time.perf_counter()
            try:
                task.result = task.execute_fn(context) or {}
                task.status = TaskStatus.SUCCESS
            except Exception as exc:
                task.status = TaskStatus.FAILED
                task.error = str(exc)
                logger.error("Task '%s' failed: %s", task_name, exc)
            finally:
                task.duration_ms = (time.perf_counter() - start) * 1000

            summary["tasks"][task_name] = {
                "status": task.status.value,
                "duration_ms": round(task.duration_ms, 2),
                "error": task.error,
            }
            summary["record_counts"].update(
                {key: value for key, value in task.result.items() if key.endswith("_count")}
            )

        all_success = all(t.status == TaskStatus.SUCCESS for t in self.tasks.values())
        summary["status"] = "completed" if all_success else "failed"
        logger.info("Pipeline '%s' finished – %s", self.name, summary["status"])
        return summary

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "tasks": {name: {"depends_on": task.depends_on} for name, task in self.tasks.items()},
        }
