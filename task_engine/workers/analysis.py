"""Analysis worker: extraction -> pattern detection -> synthesis -> insights."""

from datetime import datetime, timezone
from typing import Any

from task_engine.models import Step, StepKind, StepStatus, Task, TaskCategory
from task_engine.workers.base import AgentWorker, StepHandler


class AnalysisWorker(AgentWorker):
    category = TaskCategory.ANALYSIS
    name = "analysis"

    def build_handlers(self) -> dict[StepKind, StepHandler]:
        return {
            StepKind.EXTRACTION: self.extract,
            StepKind.PATTERN_DETECTION: self.detect_patterns,
            StepKind.SYNTHESIS: self.synthesize,
            StepKind.INSIGHTS: self.generate_insights,
        }

    async def extract(self, step: Step, task: Task) -> dict[str, Any]:
        now = self._now()
        extracted = {
            "description": step.description,
            "entities": [
                {"type": "person", "value": "Example"},
                {"type": "date", "value": datetime.fromtimestamp(now, tz=timezone.utc).isoformat()},
            ],
            "keywords": task.description.split()[:5],
            "timestamp": now,
        }
        task.metadata.setdefault("extracted_data", []).append(extracted)
        return extracted

    async def detect_patterns(self, step: Step, task: Task) -> dict[str, Any]:
        patterns = {
            "description": step.description,
            "data_points": len(task.metadata.get("extracted_data") or []),
            "patterns_found": [
                {"type": "temporal", "description": "Temporal sequence detected"},
                {"type": "correlation", "description": "Correlation between variables"},
            ],
            "confidence": 0.85,
            "timestamp": self._now(),
        }
        task.metadata["patterns"] = patterns
        return patterns

    async def synthesize(self, step: Step, task: Task) -> dict[str, Any]:
        extracted = task.metadata.get("extracted_data") or []
        patterns = task.metadata.get("patterns")
        synthesis = {
            "description": step.description,
            "data_points": len(extracted),
            "patterns": [patterns] if patterns else [],
            "summary": f"Synthesis of {len(extracted)} data point(s)",
            "timestamp": self._now(),
        }
        task.metadata["synthesis"] = synthesis
        return synthesis

    async def generate_insights(self, step: Step, task: Task) -> dict[str, Any]:
        insights = {
            "description": step.description,
            "insights": [
                {"type": "observation", "text": "Trend identified in the data"},
                {"type": "recommendation", "text": "Action recommended from the analysis"},
            ],
            "confidence": 0.9 if task.metadata.get("synthesis") else 0.7,
            "timestamp": self._now(),
        }
        task.metadata["insights"] = insights
        return insights

    def build_result(self, task: Task) -> dict[str, Any]:
        completed = task.steps_with_status(StepStatus.COMPLETED)
        return {
            "task_id": task.id,
            "description": task.description,
            "steps_completed": len(completed),
            "total_steps": len(task.steps),
            "extracted_data": list(task.metadata.get("extracted_data") or []),
            "patterns": task.metadata.get("patterns"),
            "synthesis": task.metadata.get("synthesis"),
            "insights": task.metadata.get("insights"),
            "summary": f"Analysis completed with {len(completed)} successful step(s)",
            "timestamp": self._now(),
        }
