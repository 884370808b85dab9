from typing import Optional

from pydantic import BaseModel, ConfigDict


class StartRentalRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    bookId: int


class ReturnRentalRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    rentalId: Optional[int] = None
