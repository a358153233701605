"""Creation worker: structure -> generation -> validation -> review."""

from typing import Any

from task_engine.models import Step, StepKind, StepStatus, Task, TaskCategory
from task_engine.workers.base import AgentWorker, StepHandler

_DEFAULT_QUALITY = {"completeness": 0.8, "coherence": 0.8, "relevance": 0.8}


class CreationWorker(AgentWorker):
    category = TaskCategory.CREATION
    name = "creation"

    def build_handlers(self) -> dict[StepKind, StepHandler]:
        return {
            StepKind.STRUCTURE: self.create_structure,
            StepKind.GENERATION: self.generate_content,
            StepKind.VALIDATION: self.validate_content,
            StepKind.REVIEW: self.review_content,
        }

    async def create_structure(self, step: Step, task: Task) -> dict[str, Any]:
        structure = {
            "description": step.description,
            "sections": [
                {"id": "intro", "title": "Introduction", "order": 1},
                {"id": "main", "title": "Main content", "order": 2},
                {"id": "conclusion", "title": "Conclusion", "order": 3},
            ],
            "outline": f"Structured outline for: {task.description}",
            "timestamp": self._now(),
        }
        task.metadata["structure"] = structure
        return structure

    async def generate_content(self, step: Step, task: Task) -> dict[str, Any]:
        structure = task.metadata.get("structure") or {}
        text = (
            f"Content generated for: {task.description}\n\n"
            "This content follows the requested structure."
        )
        content = {
            "description": step.description,
            "sections": structure.get("sections", []),
            "content": text,
            "word_count": len(text.split()),
            "timestamp": self._now(),
        }
        task.metadata.setdefault("generated_content", []).append(content)
        return content

    async def validate_content(self, step: Step, task: Task) -> dict[str, Any]:
        generated = task.metadata.get("generated_content") or []
        if not generated:
            raise RuntimeError("No content to validate")
        validation = {
            "description": step.description,
            "content_validated": len(generated),
            "quality": {"completeness": 0.9, "coherence": 0.85, "relevance": 0.9},
            "passed": True,
            "issues": [],
            "timestamp": self._now(),
        }
        task.metadata["validation"] = validation
        return validation

    async def review_content(self, step: Step, task: Task) -> dict[str, Any]:
        validation = task.metadata.get("validation") or {}
        review = {
            "description": step.description,
            "content_reviewed": len(task.metadata.get("generated_content") or []),
            "improvements": [
                {"type": "clarity", "suggestion": "Clarify some sections"},
            ],
            "final_quality": validation.get("quality", dict(_DEFAULT_QUALITY)),
            "timestamp": self._now(),
        }
        task.metadata["review"] = review
        return review

    def build_result(self, task: Task) -> dict[str, Any]:
        completed = task.steps_with_status(StepStatus.COMPLETED)
        generated = list(task.metadata.get("generated_content") or [])
        return {
            "task_id": task.id,
            "description": task.description,
            "steps_completed": len(completed),
            "total_steps": len(task.steps),
            "structure": task.metadata.get("structure"),
            "content": generated,
            "validation": task.metadata.get("validation"),
            "review": task.metadata.get("review"),
            "final_content": "\n\n".join(c.get("content", "") for c in generated),
            "summary": f"Creation completed with {len(completed)} successful step(s)",
            "timestamp": self._now(),
        }
