"""Shared API schema building blocks: camelCase wire models and pagination."""

from typing import Annotated, Any

from pydantic import AfterValidator, AliasChoices, BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _strip(value: object) -> object:
    return value.strip() if isinstance(value, str) else value


StrippedStr = Annotated[str, BeforeValidator(_strip)]


def max_utf8_bytes(limit: int) -> AfterValidator:
    """Length limit counted in encoded bytes, for on-chain string fields."""

    def check(value: str) -> str:
        if len(value.encode("utf-8")) > limit:
            raise ValueError(f"must be at most {limit} bytes when UTF-8 encoded")
        return value

    return AfterValidator(check)


def metadata_field() -> Any:
    """The free-form ``metadata`` JSON column, mapped as ``metadata_`` on models."""
    return Field(
        default=None,
        validation_alias=AliasChoices("metadata_", "metadata"),
        serialization_alias="metadata",
    )


class CamelModel(BaseModel):
    """Pydantic model that reads and writes camelCase JSON keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PaginationParams(BaseModel):
    limit: int = Field(default=50, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class Pagination(CamelModel):
    total: int
    limit: int
    offset: int
    has_more: bool

    @classmethod
    def build(cls, total: int, params: PaginationParams) -> "Pagination":
        return cls(
            total=total,
            limit=params.limit,
            offset=params.offset,
            has_more=total > params.offset + params.limit,
        )
