"""
Queue payloads.

Every message on an analysis queue is one variant of `TaskPayload`, tagged by
`kind`. Workers call `parse_task` on the raw dict they receive so a malformed
or misrouted message is rejected at the queue boundary.
"""
from typing import Annotated, Any, Dict, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from sitecraft.platform.exceptions import TaskPayloadError

FETCH_QUEUE = "analysis.fetch"
MODULE_QUEUE_PREFIX = "analysis.module."

FETCH_TASK_NAME = "sitecraft.features.analysis.workers.tasks.fetch_assets"
MODULE_TASK_NAME = "sitecraft.features.analysis.workers.tasks.run_module_analysis"


def module_queue(module_key: str) -> str:
    return f"{MODULE_QUEUE_PREFIX}{module_key}"


class _Task(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    analysis_id: str = Field(min_length=1)
    asset_path: str = Field(min_length=1)


class FetchTask(_Task):
    kind: Literal["fetch"] = "fetch"

    @property
    def queue_name(self) -> str:
        return FETCH_QUEUE

    @property
    def task_name(self) -> str:
        return FETCH_TASK_NAME


class ModuleTask(_Task):
    kind: Literal["module"] = "module"
    module_id: str = Field(min_length=1)
    module_key: str = Field(min_length=1)

    @property
    def queue_name(self) -> str:
        return module_queue(self.module_key)

    @property
    def task_name(self) -> str:
        return MODULE_TASK_NAME


TaskPayload = Annotated[Union[FetchTask, ModuleTask], Field(discriminator="kind")]

_task_adapter: TypeAdapter = TypeAdapter(TaskPayload)


def parse_task(raw: Dict[str, Any]) -> Union[FetchTask, ModuleTask]:
    try:
        return _task_adapter.validate_python(raw)
    except PydanticValidationError as e:
        raise TaskPayloadError(f"Invalid task payload: {e.errors()}", context={"payload": raw}) from e
