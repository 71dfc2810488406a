"""Schemas shared by several routers."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that serializes snake_case fields as camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class HealthResponse(BaseModel):
    status: str


class BatchFailureResponse(CamelModel):
    id: str
    error: str
    code: str


class BatchResultResponse(CamelModel):
    succeeded: list[str]
    failed: list[BatchFailureResponse]
    skipped: list[str]
    total_amount: str


class OperatorAction(CamelModel):
    operator_id: str
