from pydantic import BaseModel, ConfigDict, Field

class BaseSchema(BaseModel):

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )

class PaginationParams(BaseModel):

    page: int = Field(default=1, ge=1, description="Page number")
    page_size: int = Field(default=20, ge=1, le=100, description="Items per page")

    @property
    def offset(self) -> int:

        return (self.page - 1) * self.page_size

class PaginationMeta(BaseModel):

    page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, params: PaginationParams, total_items: int) -> "PaginationMeta":

        total_pages = (total_items + params.page_size - 1) // params.page_size
        return cls(
            page=params.page,
            page_size=params.page_size,
            total_items=total_items,
            total_pages=total_pages,
            has_next=params.page < total_pages,
            has_prev=params.page > 1,
        )
